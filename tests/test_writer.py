from __future__ import annotations

import importlib
import sys
from collections.abc import Callable
from pathlib import Path

import pytest

import errgen


def _spec(declaration: errgen.TypeDeclaration) -> errgen.ModuleSpec:
    return errgen.build_module_spec(declaration, errgen.generate_artifacts(declaration))


def test_format_file_header_names_type_and_source() -> None:
    lines = errgen.format_file_header(errgen.WriteConfig("errors.xml"), "Error")

    assert lines[0] == lines[-1] == "# x-------------------------------------------x #"
    assert "# | Error display and failure marker" in lines
    assert "# | Generated by errgen" in lines
    assert "# | Source: errors.xml" in lines


def test_format_file_header_rejects_empty_source_label() -> None:
    with pytest.raises(ValueError, match="source_label"):
        errgen.format_file_header(errgen.WriteConfig(""), "Error")


def test_format_import_block_rejects_empty_names() -> None:
    with pytest.raises(ValueError, match="empty names"):
        errgen.format_import_block((errgen.ExternalImport("typing", ()),))


def test_module_spec_imports_typing_only_for_generics(
    fox_union: errgen.TypeDeclaration,
) -> None:
    generic = _spec(fox_union)
    plain = _spec(errgen.TypeDeclaration("Plain", errgen.UNION_KIND))

    assert [i.module for i in generic.external_imports] == [
        "__future__",
        "dataclasses",
        "typing",
    ]
    assert [i.module for i in plain.external_imports] == ["__future__", "dataclasses"]
    assert generic.filename == "error.py"
    assert plain.filename == "plain.py"


def test_module_spec_lays_out_marker_variants_and_renderer(
    fox_union: errgen.TypeDeclaration,
) -> None:
    lines = list(_spec(fox_union).content_lines)

    assert lines[0] == 'T = TypeVar("T")'
    marker = lines.index("class Error(Exception, Generic[T]):")
    one_field = lines.index("class OneField(Error):")
    attach = lines.index("Error.OneField = OneField")
    render = lines.index("def _render_error(self) -> str:")
    assert marker < one_field < attach < render
    assert lines[one_field + 1] == "    _0: T"
    assert lines[lines.index("class NamedFields(Error):") + 1] == "    species: str"
    assert lines[-1] == "Error.__str__ = _render_error"


def test_variant_sharing_union_name_is_rejected(
    make_variant: Callable[..., errgen.VariantDeclaration],
) -> None:
    declaration = errgen.TypeDeclaration(
        "Error", errgen.UNION_KIND, variants=(make_variant("Error"),)
    )

    with pytest.raises(ValueError, match="cannot share"):
        _spec(declaration)


@pytest.mark.parametrize(
    ("first", "second", "filename"),
    [("HTTPError", "HttpError", "http_error.py"), ("Error", "Error", "error.py")],
)
def test_unions_sharing_a_module_filename_are_rejected(
    first: str, second: str, filename: str
) -> None:
    declarations = [
        errgen.TypeDeclaration(first, errgen.UNION_KIND),
        errgen.TypeDeclaration(second, errgen.UNION_KIND),
    ]

    with pytest.raises(errgen.DeclarationError) as exc_info:
        errgen.build_module_specs(declarations)

    assert str(exc_info.value) == f"unions {first} and {second} both generate {filename}"


def test_filename_collision_writes_nothing(tmp_path: Path) -> None:
    path = tmp_path / "clash.xml"
    path.write_text(
        '<declarations><union name="HTTPError"/><union name="HttpError"/></declarations>',
        encoding="utf-8",
    )
    out_dir = tmp_path / "out"

    with pytest.raises(errgen.DeclarationError, match="http_error.py"):
        errgen.run_generate(errgen.GenerateConfig(path, out_dir, frozenset()))

    assert not out_dir.exists()


def test_assemble_module_source_rejects_bad_filename(
    fox_union: errgen.TypeDeclaration,
) -> None:
    spec = _spec(fox_union)
    bad = errgen.ModuleSpec("error.txt", spec.type_name, spec.external_imports, ())

    with pytest.raises(ValueError, match="end with '.py'"):
        errgen.assemble_module_source(errgen.WriteConfig("errors.xml"), bad)


def test_assembled_source_puts_future_import_first(
    generate_source: Callable[[errgen.TypeDeclaration], str],
    fox_union: errgen.TypeDeclaration,
) -> None:
    source = generate_source(fox_union)
    code_lines = [line for line in source.splitlines() if line and not line.startswith("#")]

    assert code_lines[0] == "from __future__ import annotations"
    assert source.endswith("Error.__str__ = _render_error\n")
    compile(source, "error.py", "exec")


def test_assemble_init_source_reexports_each_union(
    fox_union: errgen.TypeDeclaration,
) -> None:
    specs = (_spec(fox_union), _spec(errgen.TypeDeclaration("ParseError", "union")))

    source = errgen.assemble_init_source(errgen.WriteConfig("errors.xml"), specs)

    assert source.splitlines() == [
        '"""Error types generated by errgen from errors.xml."""',
        "",
        "from .error import Error",
        "from .parse_error import ParseError",
    ]


def test_write_package_writes_modules_then_init(
    tmp_path: Path,
    fox_union: errgen.TypeDeclaration,
) -> None:
    specs = (_spec(fox_union),)
    output_dir = tmp_path / "nested" / "fox_errors"

    result = errgen.write_package(output_dir, errgen.WriteConfig("errors.xml"), specs)

    assert [f.filename for f in result.files] == ["error.py", "__init__.py"]
    for file_result in result.files:
        content = file_result.path.read_text(encoding="utf-8")
        assert file_result.line_count == content.count("\n")
        assert file_result.byte_count == len(content.encode("utf-8"))
    assert result.total_lines == sum(f.line_count for f in result.files)


def test_written_package_is_importable(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    fox_union: errgen.TypeDeclaration,
) -> None:
    errgen.write_package(
        tmp_path / "fox_errors", errgen.WriteConfig("errors.xml"), (_spec(fox_union),)
    )
    monkeypatch.syspath_prepend(str(tmp_path))
    for name in ("fox_errors", "fox_errors.error"):
        monkeypatch.delitem(sys.modules, name, raising=False)

    package = importlib.import_module("fox_errors")

    assert str(package.Error.ManyFields(3, 6, 2, 1)) == "my favorite numbers are: 3, 6, 2, 1"
    assert repr(package.Error.OneField("hello")) == "OneField(_0='hello')"
