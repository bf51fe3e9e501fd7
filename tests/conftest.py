import argparse
import sys
import types
from collections.abc import Callable
from pathlib import Path

import pytest

GENERATOR_DIR = Path(__file__).resolve().parent.parent
if str(GENERATOR_DIR) not in sys.path:
    sys.path.insert(0, str(GENERATOR_DIR))

import errgen  # noqa: E402

FIXTURES_DIR = Path(__file__).resolve().parent / "fixtures"


@pytest.fixture
def declarations_file() -> Path:
    return FIXTURES_DIR / "errors.xml"


@pytest.fixture
def missing_path(tmp_path: Path) -> Path:
    return tmp_path / "missing.xml"


@pytest.fixture
def make_args(declarations_file: Path, tmp_path: Path) -> Callable[..., argparse.Namespace]:
    def _make_args(**overrides: object) -> argparse.Namespace:
        base_args: dict[str, object] = {
            "declarations": declarations_file,
            "output_dir": tmp_path / "out",
            "union": None,
            "list": False,
            "filter": None,
        }
        base_args.update(overrides)
        return argparse.Namespace(**base_args)

    return _make_args


@pytest.fixture
def make_variant() -> Callable[..., errgen.VariantDeclaration]:
    def _make_variant(
        name: str,
        *,
        positional: tuple[str, ...] | None = None,
        named: tuple[tuple[str, str], ...] | None = None,
        annotations: tuple[str, ...] = (),
        docs: tuple[str, ...] = (),
    ) -> errgen.VariantDeclaration:
        if positional is not None:
            style = errgen.STYLE_POSITIONAL
            fields = tuple(errgen.FieldDeclaration(None, t) for t in positional)
        elif named is not None:
            style = errgen.STYLE_NAMED
            fields = tuple(errgen.FieldDeclaration(n, t) for n, t in named)
        else:
            style = errgen.STYLE_UNIT
            fields = ()
        return errgen.VariantDeclaration(
            name=name,
            style=style,
            fields=fields,
            annotations=tuple(errgen.Annotation("err", a) for a in annotations),
            docs=tuple(errgen.doc_line(d) for d in docs),
        )

    return _make_variant


@pytest.fixture
def fox_union(
    make_variant: Callable[..., errgen.VariantDeclaration],
) -> errgen.TypeDeclaration:
    return errgen.TypeDeclaration(
        name="Error",
        kind=errgen.UNION_KIND,
        generics=("T",),
        variants=(
            make_variant(
                "NoFields",
                docs=(" i am a doc comment", " other lines get ignored"),
            ),
            make_variant(
                "OneField",
                positional=("T",),
                annotations=('msg = "i have one field"',),
                docs=(" or override the message with an attribute",),
            ),
            make_variant(
                "ManyFields",
                positional=("int", "int", "int", "int"),
                docs=(" my favorite numbers are",),
            ),
            make_variant(
                "NamedFields",
                named=(("species", "str"), ("leggies", "int")),
            ),
        ),
    )


@pytest.fixture
def generate_source() -> Callable[[errgen.TypeDeclaration], str]:
    def _generate_source(declaration: errgen.TypeDeclaration) -> str:
        artifacts = errgen.generate_artifacts(declaration)
        spec = errgen.build_module_spec(declaration, artifacts)
        return errgen.assemble_module_source(errgen.WriteConfig("errors.xml"), spec)

    return _generate_source


@pytest.fixture
def load_generated(
    monkeypatch: pytest.MonkeyPatch,
) -> Callable[[str], types.ModuleType]:
    counter = iter(range(1_000_000))

    def _load_generated(source: str) -> types.ModuleType:
        name = f"errgen_generated_{next(counter)}"
        module = types.ModuleType(name)
        monkeypatch.setitem(sys.modules, name, module)
        exec(compile(source, f"<{name}>", "exec"), module.__dict__)
        return module

    return _load_generated
