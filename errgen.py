"""Error type generator for Python.

Generates display and failure-marker code for tagged-union error
declarations. Produces one Python module per union plus a re-exporting
`__init__.py` under the output directory.

Usage:
    python errgen.py --declarations errors.xml --output-dir src/myapp/errors
    python errgen.py --declarations errors.xml --list
"""

import argparse
import ast
import io
import keyword
import re
import sys
import tokenize
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path

DEFAULT_OUTPUT_DIR = Path("generated")


# ===--- CLI config contracts ---=== #


@dataclass(frozen=True)
class GenerateConfig:
    declarations: Path
    output_dir: Path
    unions: frozenset[str]


@dataclass(frozen=True)
class DiscoveryConfig:
    filter_text: str | None
    declarations: Path


VALID_ERROR_CODES = {
    "MISSING_DECLARATIONS",
    "PATH_NOT_FOUND",
    "INVALID_UNION_NAME",
    "CONFLICT_GENERATE_DISCOVERY",
    "FILTER_WITHOUT_LIST",
}
_IDENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class ConfigError(Exception):
    def __init__(self, code: str, message: str, suggestion: str | None = None):
        if code not in VALID_ERROR_CODES:
            raise ValueError(f"Unknown config error code: {code}")
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion


def validate_union_name(name: str) -> str:
    if _IDENT_RE.match(name) and not keyword.iskeyword(name):
        return name
    raise ConfigError(
        "INVALID_UNION_NAME",
        f"Invalid union name: {name}",
        "Union names must be Python identifiers (for example ParseError).",
    )


def validate_path_exists(
    path: Path | None, flag: str, suggestion: str | None = None
) -> Path:
    if path is None:
        raise ConfigError(
            "PATH_NOT_FOUND",
            f"{flag} is required: no path provided.",
            suggestion or f"Pass the path explicitly: {flag} /path/to/resource",
        )
    if path.exists():
        return path
    raise ConfigError(
        "PATH_NOT_FOUND",
        f"Path for {flag} does not exist: {path}",
        suggestion or "Provide an existing path for this flag.",
    )


def build_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Generate display and failure-marker code for error unions"
    )

    parser.add_argument("--declarations", type=Path, default=None)
    parser.add_argument("--output-dir", type=Path, default=DEFAULT_OUTPUT_DIR)
    parser.add_argument("--union", action="append", nargs="+", default=None)

    parser.add_argument("--list", action="store_true", default=False)
    parser.add_argument("--filter", type=str, default=None)

    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = build_argument_parser()
    return parser.parse_args(argv)


def normalize_unions(raw_unions: object) -> tuple[str, ...]:
    if raw_unions is None:
        return tuple()

    normalized: list[str] = []
    for entry in raw_unions:
        if isinstance(entry, str):
            normalized.append(entry)
        else:
            normalized.extend(entry)
    return tuple(normalized)


def validate_config(args: argparse.Namespace) -> GenerateConfig | DiscoveryConfig:
    raw_unions = normalize_unions(args.union)

    if args.filter and not args.list:
        raise ConfigError(
            "FILTER_WITHOUT_LIST",
            "--filter requires --list.",
            "Add --list or remove --filter.",
        )

    if raw_unions and args.list:
        raise ConfigError(
            "CONFLICT_GENERATE_DISCOVERY",
            "--union cannot be combined with --list.",
            "Use --filter to narrow the listing instead.",
        )

    if args.declarations is None:
        raise ConfigError(
            "MISSING_DECLARATIONS",
            "--declarations is required.",
            "Pass the declaration file: --declarations errors.xml",
        )
    declarations = validate_path_exists(args.declarations, "--declarations")

    if args.list:
        return DiscoveryConfig(filter_text=args.filter, declarations=declarations)

    return GenerateConfig(
        declarations=declarations,
        output_dir=args.output_dir,
        unions=frozenset(validate_union_name(name) for name in raw_unions),
    )


def build_config(argv: list[str] | None = None) -> GenerateConfig | DiscoveryConfig:
    return validate_config(parse_args(argv))


# ===--- Constants ---=== #

UNION_KIND = "union"
ANNOTATION_NAMESPACE = "err"
MESSAGE_ARGUMENT = "msg"

STYLE_UNIT = "unit"
STYLE_POSITIONAL = "positional"
STYLE_NAMED = "named"
VALID_STYLES = {STYLE_UNIT, STYLE_POSITIONAL, STYLE_NAMED}

BINDING_PREFIX = "arg_"
POSITIONAL_ATTR_PREFIX = "_"
PLACEHOLDER = "{}"
DEFAULT_FIELD_TYPE = "object"


# ===--- Declaration data classes ---=== #


@dataclass(frozen=True)
class FieldDeclaration:
    name: str | None
    type_name: str = DEFAULT_FIELD_TYPE


@dataclass(frozen=True)
class Annotation:
    """One metadata annotation on a variant, e.g. `err(msg = "boom")`.

    Attributes:
        name: Annotation namespace. Only ANNOTATION_NAMESPACE is interpreted.
        arguments: Raw, unparsed argument text between the parentheses.
    """

    name: str
    arguments: str


@dataclass(frozen=True)
class VariantDeclaration:
    """One case of a tagged union, as handed over by the front end.

    Attributes:
        name: Variant identifier.
        style: STYLE_UNIT, STYLE_POSITIONAL or STYLE_NAMED.
        fields: Ordered field declarations. Empty for STYLE_UNIT.
        annotations: Annotations in declaration order.
        docs: Leading documentation lines in order. Each line is an
            expression node; plain text lines are ast.Constant strings.
    """

    name: str
    style: str
    fields: tuple[FieldDeclaration, ...] = ()
    annotations: tuple[Annotation, ...] = ()
    docs: tuple[ast.expr, ...] = ()


@dataclass(frozen=True)
class TypeDeclaration:
    name: str
    kind: str
    generics: tuple[str, ...] = ()
    variants: tuple[VariantDeclaration, ...] = ()


def doc_line(text: str) -> ast.Constant:
    return ast.Constant(value=text)


# ===--- Generation errors ---=== #

VALID_GENERATION_ERROR_CODES = {
    "NOT_A_UNION",
    "UNPARSABLE_ANNOTATION_ARGUMENTS",
    "MISSING_FIELD_IDENTIFIER",
}


class GenerationError(Exception):
    """Fatal pipeline failure. Aborts generation for the whole type."""

    def __init__(self, code: str, message: str, location: str):
        if code not in VALID_GENERATION_ERROR_CODES:
            raise ValueError(f"Unknown generation error code: {code}")
        super().__init__(f"{location}: {message}")
        self.code = code
        self.message = message
        self.location = location


class DeclarationError(ValueError):
    """Declaration file is well-formed XML but not a valid declaration set."""


# ===--- Annotation argument parsing ---=== #


@dataclass(frozen=True)
class AnnotationArgument:
    name: str
    value: ast.expr | None


_ARGUMENT_RE = re.compile(r"([A-Za-z_][A-Za-z0-9_]*)\s*(?:=(?!=)(.*))?", re.DOTALL)


def _split_top_level(text: str, location: str) -> list[str]:
    """Split text on commas that are not nested in brackets or strings.

    The text is tokenized inside an outer pair of brackets, so continuation
    lines may be indented freely.
    """
    wrapped = f"(\n{text}\n)"
    line_starts = [0]
    for line in io.StringIO(wrapped):
        line_starts.append(line_starts[-1] + len(line))

    def _offset(position: tuple[int, int]) -> int:
        row, col = position
        return line_starts[row - 1] + col

    pieces: list[str] = []
    depth = 0
    start = 1
    try:
        for token in tokenize.generate_tokens(io.StringIO(wrapped).readline):
            if token.type != tokenize.OP:
                continue
            if token.string in ("(", "[", "{"):
                depth += 1
            elif token.string in (")", "]", "}"):
                depth -= 1
                if depth < 0 or (depth == 0 and _offset(token.end) != len(wrapped)):
                    raise GenerationError(
                        "UNPARSABLE_ANNOTATION_ARGUMENTS",
                        f"unbalanced {token.string!r} in annotation arguments",
                        location,
                    )
            elif token.string == "," and depth == 1:
                pieces.append(wrapped[start : _offset(token.start)])
                start = _offset(token.end)
    except (tokenize.TokenError, SyntaxError) as err:
        raise GenerationError(
            "UNPARSABLE_ANNOTATION_ARGUMENTS",
            f"could not tokenize annotation arguments: {err}",
            location,
        ) from err
    pieces.append(wrapped[start:-1])
    return pieces


def parse_annotation_argument(piece: str, location: str) -> AnnotationArgument:
    match = _ARGUMENT_RE.fullmatch(piece.strip())
    if match is None or keyword.iskeyword(match.group(1)):
        raise GenerationError(
            "UNPARSABLE_ANNOTATION_ARGUMENTS",
            f"expected `name` or `name = expression`, got {piece.strip()!r}",
            location,
        )
    name, expression = match.group(1), match.group(2)
    if expression is None:
        return AnnotationArgument(name=name, value=None)
    source = expression.strip()
    if not source:
        raise GenerationError(
            "UNPARSABLE_ANNOTATION_ARGUMENTS",
            f"missing expression for argument {name!r}",
            location,
        )
    try:
        # Bracketed so a value may span lines.
        value = ast.parse(f"(\n{source}\n)", mode="eval").body
    except SyntaxError as err:
        raise GenerationError(
            "UNPARSABLE_ANNOTATION_ARGUMENTS",
            f"invalid expression for argument {name!r}: {source!r}",
            location,
        ) from err
    return AnnotationArgument(name=name, value=value)


def parse_annotation_arguments(
    text: str, location: str
) -> tuple[AnnotationArgument, ...]:
    """Parse a comma-separated `name` / `name = expression` list.

    Arguments keep their declaration order and duplicates are kept. An
    empty list, an empty entry (including a trailing comma) or an entry
    that is not an identifier optionally followed by `= expression` is
    fatal.

    Raises:
        GenerationError: UNPARSABLE_ANNOTATION_ARGUMENTS.
    """
    return tuple(
        parse_annotation_argument(piece, location)
        for piece in _split_top_level(text.strip(), location)
    )


# ===--- Variant descriptors ---=== #


@dataclass(frozen=True)
class EmptyShape:
    @property
    def count(self) -> int:
        return 0


@dataclass(frozen=True)
class PositionalShape:
    count: int


@dataclass(frozen=True)
class NamedShape:
    names: tuple[str, ...]

    @property
    def count(self) -> int:
        return len(self.names)


FieldShape = EmptyShape | PositionalShape | NamedShape


@dataclass(frozen=True)
class VariantDescriptor:
    """Normalized variant, produced by the extractor.

    Attributes:
        name: Variant identifier.
        fields: Shape mirroring the declaration's style and field count.
        message: Resolved message, or None to fall back to the name.
    """

    name: str
    fields: FieldShape
    message: str | None


@dataclass(frozen=True)
class ExtractedUnion:
    name: str
    generics: tuple[str, ...]
    variants: tuple[VariantDescriptor, ...]


def shape_label(shape: FieldShape) -> str:
    if isinstance(shape, PositionalShape):
        return f"{STYLE_POSITIONAL}({shape.count})"
    if isinstance(shape, NamedShape):
        return f"{STYLE_NAMED}({shape.count})"
    return "empty"


# ===--- Message resolution ---=== #


def string_literal_value(expr: ast.expr | None) -> str | None:
    if isinstance(expr, ast.Constant) and isinstance(expr.value, str):
        return expr.value
    return None


def strip_leading_space(text: str) -> str:
    return text.removeprefix(" ")


def resolve_message(
    doc: ast.expr | None,
    arguments: tuple[AnnotationArgument, ...] | None,
) -> str | None:
    """Resolve the display message for one variant.

    Precedence:
        1. The first `msg` argument of the last recognized annotation, when
           its value is a string literal.
        2. The first documentation line, when it is a string literal.
        3. None (the generator substitutes the variant name).

    A `msg` without a value, or with a non-literal value, counts as absent.
    One leading space is stripped from the result. An empty result is None.
    """
    candidate = None
    for argument in arguments or ():
        if argument.name == MESSAGE_ARGUMENT:
            candidate = string_literal_value(argument.value)
            break
    if candidate is None:
        candidate = string_literal_value(doc)
    if candidate is None:
        return None
    return strip_leading_space(candidate) or None


# ===--- Declaration extraction ---=== #


def extract_field_shape(variant: VariantDeclaration, location: str) -> FieldShape:
    if variant.style == STYLE_UNIT:
        return EmptyShape()
    if variant.style == STYLE_POSITIONAL:
        return PositionalShape(len(variant.fields))
    if variant.style == STYLE_NAMED:
        names: list[str] = []
        for index, field in enumerate(variant.fields):
            if not field.name:
                raise GenerationError(
                    "MISSING_FIELD_IDENTIFIER",
                    f"named field #{index} has no identifier",
                    location,
                )
            names.append(field.name)
        return NamedShape(tuple(names))
    raise ValueError(f"Unknown variant style for {location}: {variant.style!r}")


def extract_variant(variant: VariantDeclaration, type_name: str) -> VariantDescriptor:
    location = f"{type_name}.{variant.name}"
    doc = variant.docs[0] if variant.docs else None

    arguments = None
    for annotation in variant.annotations:
        if annotation.name != ANNOTATION_NAMESPACE:
            continue
        # Every recognized annotation must parse; only the last one is used.
        arguments = parse_annotation_arguments(annotation.arguments, location)

    return VariantDescriptor(
        name=variant.name,
        fields=extract_field_shape(variant, location),
        message=resolve_message(doc, arguments),
    )


def extract_union(declaration: TypeDeclaration) -> ExtractedUnion:
    """Normalize a union declaration into variant descriptors.

    Raises:
        GenerationError: NOT_A_UNION when the declaration is not a tagged
            union; any variant-level error from extract_variant.
    """
    if declaration.kind != UNION_KIND:
        raise GenerationError(
            "NOT_A_UNION",
            f"only unions are supported, got {declaration.kind!r}",
            declaration.name,
        )
    return ExtractedUnion(
        name=declaration.name,
        generics=declaration.generics,
        variants=tuple(
            extract_variant(variant, declaration.name)
            for variant in declaration.variants
        ),
    )


# ===--- Render rule generation ---=== #


@dataclass(frozen=True)
class PatternBinding:
    field: str | None
    binding: str


@dataclass(frozen=True)
class RenderRule:
    """Per-variant binding pattern and format template.

    Attributes:
        variant: Variant identifier the rule matches.
        pattern: Captures in declaration order. field is None for
            positional captures.
        template: Format pieces; PLACEHOLDER entries are filled with the
            message first, then each binding in pattern order.
        message: Resolved message or the bare variant name.
    """

    variant: str
    pattern: tuple[PatternBinding, ...]
    template: tuple[str, ...]
    message: str

    @property
    def format_string(self) -> str:
        return "".join(self.template)


@dataclass(frozen=True)
class GeneratedArtifacts:
    """Output of one pipeline run for one union.

    Attributes:
        type_name: Union name.
        generics: Type parameters of the union.
        variants: Descriptors the rules were built from, in order.
        render_function: Name of the generated rendering function.
        render_lines: Source lines of the rendering function.
        marker_lines: Source lines of the failure-kind marker class.
    """

    type_name: str
    generics: tuple[str, ...]
    variants: tuple[VariantDescriptor, ...]
    render_function: str
    render_lines: tuple[str, ...]
    marker_lines: tuple[str, ...]


def build_render_rule(descriptor: VariantDescriptor) -> RenderRule:
    message = descriptor.message if descriptor.message is not None else descriptor.name
    pattern: list[PatternBinding] = []
    template: list[str] = [PLACEHOLDER]

    shape = descriptor.fields
    if isinstance(shape, PositionalShape):
        for index in range(shape.count):
            pattern.append(PatternBinding(None, f"{BINDING_PREFIX}{index}"))
            template.append(": " if index == 0 else ", ")
            template.append(PLACEHOLDER)
    elif isinstance(shape, NamedShape):
        for index, name in enumerate(shape.names):
            pattern.append(PatternBinding(name, f"{BINDING_PREFIX}{index}"))
            template.append(": " if index == 0 else ", ")
            template.append(f"{name}: ")
            template.append(PLACEHOLDER)

    return RenderRule(
        variant=descriptor.name,
        pattern=tuple(pattern),
        template=tuple(template),
        message=message,
    )


def format_render_case(type_name: str, rule: RenderRule) -> list[str]:
    captures = ", ".join(
        b.binding if b.field is None else f"{b.field}={b.binding}"
        for b in rule.pattern
    )
    arguments = ", ".join([repr(rule.message), *(b.binding for b in rule.pattern)])
    return [
        f"        case {type_name}.{rule.variant}({captures}):",
        f"            return {rule.format_string!r}.format({arguments})",
    ]


def render_function_name(type_name: str) -> str:
    return f"_render_{to_snake_case(type_name)}"


def generate_render_function(union: ExtractedUnion) -> list[str]:
    lines = [
        f"def {render_function_name(union.name)}(self) -> str:",
        "    match self:",
    ]
    for descriptor in union.variants:
        lines.extend(format_render_case(union.name, build_render_rule(descriptor)))
    lines.append("        case _:")
    lines.append("            return Exception.__str__(self)")
    return lines


def generate_failure_marker(union: ExtractedUnion) -> list[str]:
    bases = ["Exception"]
    if union.generics:
        bases.append(f"Generic[{', '.join(union.generics)}]")
    return [f"class {union.name}({', '.join(bases)}):", "    pass"]


def generate_artifacts(declaration: TypeDeclaration) -> GeneratedArtifacts:
    """Run extraction, resolution and rule generation for one declaration."""
    union = extract_union(declaration)
    return GeneratedArtifacts(
        type_name=union.name,
        generics=union.generics,
        variants=union.variants,
        render_function=render_function_name(union.name),
        render_lines=tuple(generate_render_function(union)),
        marker_lines=tuple(generate_failure_marker(union)),
    )


def to_snake_case(name: str) -> str:
    return re.sub(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])", "_", name).lower()


# ===--- Declaration file parsing ---=== #


# Bound at module level in every generated union module.
GENERATED_MODULE_NAMES = frozenset(
    {"annotations", "dataclass", "Exception", "Generic", "TypeVar"}
)


def validate_declared_name(name: str, location: str) -> str:
    if _IDENT_RE.fullmatch(name) and not keyword.iskeyword(name):
        return name
    raise DeclarationError(f"{location}: {name!r} is not a valid Python identifier")


def check_module_names(declaration: TypeDeclaration) -> None:
    """Reject names that would collide at module level in the generated file.

    Union, type parameter, variant and rendering function names share one
    namespace with the generated imports.
    """
    owners: dict[str, str] = {}
    candidates = [(declaration.name, "union")]
    candidates.extend((g, "type parameter") for g in declaration.generics)
    candidates.extend((v.name, "variant") for v in declaration.variants)
    candidates.append((render_function_name(declaration.name), "rendering function"))
    for name, role in candidates:
        if name in GENERATED_MODULE_NAMES:
            raise DeclarationError(
                f"{declaration.name}: {role} name {name!r} is reserved in "
                f"generated modules"
            )
        if name in owners:
            raise DeclarationError(
                f"{declaration.name}: {role} name {name!r} is already used by "
                f"the {owners[name]}"
            )
        owners[name] = role


def parse_generics(raw: str | None, location: str) -> tuple[str, ...]:
    if not raw:
        return tuple()
    return tuple(
        validate_declared_name(part.strip(), f"{location} generics")
        for part in raw.split(",")
        if part.strip()
    )


def parse_doc_element(el: ET.Element, location: str) -> ast.expr:
    expr = el.get("expr")
    if expr is None:
        return doc_line(el.text or "")
    try:
        return ast.parse(expr.strip(), mode="eval").body
    except SyntaxError as err:
        raise GenerationError(
            "UNPARSABLE_ANNOTATION_ARGUMENTS",
            f"invalid doc expression: {expr!r}",
            location,
        ) from err


def parse_field_element(el: ET.Element, location: str) -> FieldDeclaration:
    name = el.get("name") or None
    if name is not None:
        validate_declared_name(name, f"{location} field")
    type_name = el.get("type") or DEFAULT_FIELD_TYPE
    try:
        ast.parse(type_name, mode="eval")
    except SyntaxError as err:
        raise DeclarationError(
            f"{location}: field type {type_name!r} is not a Python expression"
        ) from err
    return FieldDeclaration(name=name, type_name=type_name)


def infer_variant_style(fields: tuple[FieldDeclaration, ...]) -> str:
    if not fields:
        return STYLE_UNIT
    if any(f.name for f in fields):
        return STYLE_NAMED
    return STYLE_POSITIONAL


def parse_variant_element(el: ET.Element, type_name: str) -> VariantDeclaration:
    name = el.get("name")
    if not name:
        raise DeclarationError(f"{type_name}: <variant> is missing a name")
    validate_declared_name(name, f"{type_name} variant")
    location = f"{type_name}.{name}"

    fields = tuple(parse_field_element(f, location) for f in el.findall("field"))
    field_names = [f.name for f in fields if f.name]
    if len(set(field_names)) != len(field_names):
        raise DeclarationError(f"{location}: duplicate field names {field_names}")
    style = el.get("style") or infer_variant_style(fields)
    if style not in VALID_STYLES:
        raise DeclarationError(
            f"{location}: unknown style {style!r} "
            f"(expected one of: {', '.join(sorted(VALID_STYLES))})"
        )
    if style == STYLE_UNIT and fields:
        raise DeclarationError(f"{location}: unit variants cannot declare fields")

    annotations = tuple(
        Annotation(name=a.get("name", ""), arguments=(a.text or "").strip())
        for a in el.findall("annotation")
    )
    docs = tuple(parse_doc_element(d, location) for d in el.findall("doc"))
    return VariantDeclaration(
        name=name,
        style=style,
        fields=fields,
        annotations=annotations,
        docs=docs,
    )


def load_declarations(root: ET.Element) -> list[TypeDeclaration]:
    """Build TypeDeclarations from a parsed <declarations> document.

    Each child element is one declaration; its tag is the declaration kind.
    Every declared name must be a Python identifier, and a union's
    module-level names must not collide. Non-union kinds are otherwise loaded
    as-is and rejected later by extract_union.

    Raises:
        DeclarationError: Invalid root, name, style or field.
    """
    if root.tag != "declarations":
        raise DeclarationError(
            f"expected <declarations> root element, got <{root.tag}>"
        )
    declarations = []
    for el in root:
        name = el.get("name")
        if not name:
            raise DeclarationError(f"<{el.tag}> declaration is missing a name")
        validate_declared_name(name, f"<{el.tag}> declaration")
        declaration = TypeDeclaration(
            name=name,
            kind=el.tag,
            generics=parse_generics(el.get("generics"), name),
            variants=tuple(
                parse_variant_element(v, name) for v in el.findall("variant")
            ),
        )
        if declaration.kind == UNION_KIND:
            check_module_names(declaration)
        declarations.append(declaration)
    return declarations


def load_declaration_file(path: Path) -> list[TypeDeclaration]:
    return load_declarations(ET.parse(path).getroot())


# ===--- Discovery ---=== #


@dataclass(frozen=True)
class VariantSummary:
    name: str
    shape: str
    message: str


@dataclass(frozen=True)
class DeclarationSummary:
    """One declaration block of the --list output.

    Attributes:
        name: Declaration name.
        kind: Declaration kind from the file, e.g. "union" or "struct".
        variants: Variant rows with resolved messages. Empty for non-unions.
    """

    name: str
    kind: str
    variants: tuple[VariantSummary, ...]


def summarize_declaration(declaration: TypeDeclaration) -> DeclarationSummary:
    if declaration.kind != UNION_KIND:
        return DeclarationSummary(declaration.name, declaration.kind, ())
    union = extract_union(declaration)
    return DeclarationSummary(
        name=union.name,
        kind=declaration.kind,
        variants=tuple(
            VariantSummary(
                name=v.name,
                shape=shape_label(v.fields),
                message=build_render_rule(v).message,
            )
            for v in union.variants
        ),
    )


def filter_declarations_by_text(
    summaries: list[DeclarationSummary], text: str
) -> list[DeclarationSummary]:
    """Keep declarations whose name or any variant name contains text.

    Matching is case-insensitive. Matching a variant keeps the whole block.
    """
    needle = text.lower()
    return [
        s
        for s in summaries
        if needle in s.name.lower() or any(needle in v.name.lower() for v in s.variants)
    ]


def format_declarations_table(
    summaries: list[DeclarationSummary], source_label: str
) -> str:
    """Return the complete --list output.

    Output format:

        2 declarations in errors.xml:

          Error (union, 2 variants)
            NoFields    empty          i am a doc comment
            OneField    positional(1)  i have one field
          Point (struct, not a union)

    """
    lines = [f"{len(summaries)} declarations in {source_label}:", ""]
    for s in summaries:
        if s.kind != UNION_KIND:
            lines.append(f"  {s.name} ({s.kind}, not a union)")
            continue
        lines.append(f"  {s.name} ({s.kind}, {len(s.variants)} variants)")
        name_width = max((len(v.name) for v in s.variants), default=0)
        shape_width = max((len(v.shape) for v in s.variants), default=0)
        for v in s.variants:
            lines.append(
                f"    {v.name.ljust(name_width)}  {v.shape.ljust(shape_width)}  {v.message}"
            )
    lines.append("")
    return "\n".join(lines)


def run_discovery(config: DiscoveryConfig) -> None:
    """Print the --list table for the declaration file.

    Raises:
        GenerationError: A union in the file has malformed metadata.
        DeclarationError: The file is not a valid declaration set.
    """
    declarations = load_declaration_file(config.declarations)
    summaries = [summarize_declaration(d) for d in declarations]
    if config.filter_text is not None:
        summaries = filter_declarations_by_text(summaries, config.filter_text)
    print(format_declarations_table(summaries, config.declarations.name), end="")


# ===--- Package writer ---=== #


@dataclass(frozen=True)
class WriteConfig:
    """Shared generation metadata embedded in every file preamble.

    Attributes:
        source_label: Declaration file name shown in headers, e.g. "errors.xml".
    """

    source_label: str


@dataclass(frozen=True)
class ExternalImport:
    module: str
    names: tuple[str, ...]


@dataclass(frozen=True)
class ModuleSpec:
    """Complete input for one generated union module.

    Attributes:
        filename: Output filename including .py extension.
        type_name: Union exported by the module.
        external_imports: Imports in declaration order.
        content_lines: Module body without header or imports.
    """

    filename: str
    type_name: str
    external_imports: tuple[ExternalImport, ...]
    content_lines: tuple[str, ...]


@dataclass(frozen=True)
class FileWriteResult:
    filename: str
    path: Path
    line_count: int
    byte_count: int


@dataclass(frozen=True)
class PackageWriteResult:
    output_dir: Path
    files: tuple[FileWriteResult, ...]

    @property
    def total_lines(self) -> int:
        """Sum of line_count across all written files."""
        return sum(f.line_count for f in self.files)


_HEADER_BORDER: str = "# x-------------------------------------------x #"


def format_file_header(config: WriteConfig, type_name: str) -> list[str]:
    if not config.source_label:
        raise ValueError("source_label must not be empty")
    return [
        _HEADER_BORDER,
        f"# | {type_name} display and failure marker",
        "# | Generated by errgen",
        f"# | Source: {config.source_label}",
        _HEADER_BORDER,
    ]


def format_import_block(external_imports: tuple[ExternalImport, ...]) -> list[str]:
    lines: list[str] = []
    for imp in external_imports:
        if not imp.names:
            raise ValueError(
                f"ExternalImport for module '{imp.module}' has empty names tuple"
            )
        lines.append(f"from {imp.module} import {', '.join(imp.names)}")
    return lines


def format_variant_class(
    type_name: str, variant: VariantDeclaration
) -> list[str]:
    lines = ["@dataclass(eq=False)", f"class {variant.name}({type_name}):"]
    if not variant.fields:
        lines.append("    pass")
    for index, field in enumerate(variant.fields):
        if variant.style == STYLE_NAMED:
            lines.append(f"    {field.name}: {field.type_name}")
        else:
            lines.append(f"    {POSITIONAL_ATTR_PREFIX}{index}: {field.type_name}")
    return lines


def build_module_spec(
    declaration: TypeDeclaration, artifacts: GeneratedArtifacts
) -> ModuleSpec:
    """Lay out one union module: marker, variant classes, renderer.

    Raises:
        ValueError: A variant shares the union's name (both are module-level
            names in the generated file).
    """
    type_name = artifacts.type_name
    for variant in declaration.variants:
        if variant.name == type_name:
            raise ValueError(
                f"Variant {type_name}.{variant.name} cannot share the union's name"
            )

    imports = [ExternalImport("__future__", ("annotations",))]
    imports.append(ExternalImport("dataclasses", ("dataclass",)))
    if artifacts.generics:
        imports.append(ExternalImport("typing", ("Generic", "TypeVar")))

    lines: list[str] = []
    for param in artifacts.generics:
        lines.append(f'{param} = TypeVar("{param}")')
    if artifacts.generics:
        lines.extend(["", ""])

    lines.extend(artifacts.marker_lines)
    for variant in declaration.variants:
        lines.extend(["", ""])
        lines.extend(format_variant_class(type_name, variant))

    if declaration.variants:
        lines.extend(["", ""])
        for variant in declaration.variants:
            lines.append(f"{type_name}.{variant.name} = {variant.name}")

    lines.extend(["", ""])
    lines.extend(artifacts.render_lines)
    lines.extend(["", ""])
    lines.append(f"{type_name}.__str__ = {artifacts.render_function}")

    return ModuleSpec(
        filename=f"{to_snake_case(type_name)}.py",
        type_name=type_name,
        external_imports=tuple(imports),
        content_lines=tuple(lines),
    )


def assemble_module_source(config: WriteConfig, spec: ModuleSpec) -> str:
    if not spec.filename or not spec.filename.endswith(".py"):
        raise ValueError(
            f"spec.filename must be non-empty and end with '.py', "
            f"got {spec.filename!r}"
        )

    parts: list[str] = list(format_file_header(config, spec.type_name))
    if spec.external_imports:
        parts.append("")
        parts.extend(format_import_block(spec.external_imports))
    if spec.content_lines:
        parts.extend(["", ""])
        parts.extend(spec.content_lines)
    return "\n".join(parts) + "\n"


def assemble_init_source(config: WriteConfig, specs: tuple[ModuleSpec, ...]) -> str:
    parts = [f'"""Error types generated by errgen from {config.source_label}."""', ""]
    for spec in specs:
        parts.append(f"from .{spec.filename.removesuffix('.py')} import {spec.type_name}")
    return "\n".join(parts) + "\n"


def _write_text(output_dir: Path, filename: str, content: str) -> FileWriteResult:
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    file_path = output_dir / filename
    file_path.write_text(content, encoding="utf-8")
    resolved = file_path.resolve()
    return FileWriteResult(
        filename=filename,
        path=resolved,
        line_count=content.count("\n"),
        byte_count=len(resolved.read_bytes()),
    )


def write_module(
    output_dir: Path, config: WriteConfig, spec: ModuleSpec
) -> FileWriteResult:
    return _write_text(output_dir, spec.filename, assemble_module_source(config, spec))


def write_init_module(
    output_dir: Path, config: WriteConfig, specs: tuple[ModuleSpec, ...]
) -> FileWriteResult:
    return _write_text(output_dir, "__init__.py", assemble_init_source(config, specs))


def write_package(
    output_dir: Path,
    config: WriteConfig,
    module_specs: tuple[ModuleSpec, ...],
) -> PackageWriteResult:
    """Write every union module, then __init__.py last.

    Propagates any OSError immediately; there is no rollback.
    """
    files: list[FileWriteResult] = []
    for spec in module_specs:
        files.append(write_module(output_dir, config, spec))
    files.append(write_init_module(output_dir, config, module_specs))
    return PackageWriteResult(output_dir=Path(output_dir), files=tuple(files))


# ===--- Pipeline ---=== #


def select_declarations(
    declarations: list[TypeDeclaration], names: frozenset[str]
) -> list[TypeDeclaration]:
    """Return declarations named in names, or all of them when names is empty.

    Raises:
        DeclarationError: A requested name is not declared in the file.
    """
    if not names:
        return list(declarations)
    known = {d.name for d in declarations}
    missing = sorted(names - known)
    if missing:
        raise DeclarationError(f"unknown union(s): {', '.join(missing)}")
    return [d for d in declarations if d.name in names]


def build_module_specs(
    declarations: list[TypeDeclaration],
) -> tuple[tuple[ModuleSpec, ...], tuple[GeneratedArtifacts, ...]]:
    """Generate every declaration before anything is written.

    Raises:
        GenerationError: First failing declaration; nothing is returned.
        DeclarationError: Two unions map to the same module filename.
    """
    artifacts = tuple(generate_artifacts(d) for d in declarations)
    specs = tuple(build_module_spec(d, a) for d, a in zip(declarations, artifacts))

    owners: dict[str, str] = {}
    for spec in specs:
        if spec.filename in owners:
            raise DeclarationError(
                f"unions {owners[spec.filename]} and {spec.type_name} both "
                f"generate {spec.filename}"
            )
        owners[spec.filename] = spec.type_name
    return specs, artifacts


def run_generate(config: GenerateConfig) -> PackageWriteResult:
    """Execute parse -> select -> generate -> write -> summary.

    Raises:
        OSError: Declaration file not readable or filesystem write failure.
        ET.ParseError: Malformed XML.
        DeclarationError: Invalid declaration set or unknown --union name.
        GenerationError: Any pipeline failure; no file is written.
    """
    print(f"Parsing: {config.declarations}")
    declarations = load_declaration_file(config.declarations)
    selected = select_declarations(declarations, config.unions)
    print(f"  Declarations: {len(declarations)} found, {len(selected)} selected")

    specs, artifacts = build_module_specs(selected)
    variant_count = sum(len(a.variants) for a in artifacts)
    print(f"  Generated: {len(artifacts)} unions, {variant_count} variants")

    write_config = WriteConfig(source_label=config.declarations.name)
    result = write_package(config.output_dir, write_config, specs)
    print(
        f"  Written: {len(result.files)} files, "
        f"{result.total_lines} lines to {result.output_dir}"
    )

    summary = build_generation_summary(write_config, artifacts, result)
    print(format_generation_summary(summary), end="")
    return result


# ===--- Summary report ---=== #


@dataclass(frozen=True)
class UnionCount:
    """Variant counts for one generated union, split by shape.

    Invariant: empty + positional + named == total.
    """

    name: str
    total: int
    empty: int
    positional: int
    named: int


@dataclass(frozen=True)
class GenerationSummary:
    source_label: str
    output_dir: str
    unions: tuple[UnionCount, ...]
    files: tuple[FileWriteResult, ...]


def build_union_count(artifacts: GeneratedArtifacts) -> UnionCount:
    shapes = [v.fields for v in artifacts.variants]
    positional = sum(1 for s in shapes if isinstance(s, PositionalShape))
    named = sum(1 for s in shapes if isinstance(s, NamedShape))
    empty = len(shapes) - positional - named
    return UnionCount(
        name=artifacts.type_name,
        total=len(shapes),
        empty=empty,
        positional=positional,
        named=named,
    )


def build_generation_summary(
    write_config: WriteConfig,
    artifacts: tuple[GeneratedArtifacts, ...],
    write_result: PackageWriteResult,
) -> GenerationSummary:
    return GenerationSummary(
        source_label=write_config.source_label,
        output_dir=str(write_result.output_dir),
        unions=tuple(build_union_count(a) for a in artifacts),
        files=write_result.files,
    )


def format_generation_summary(summary: GenerationSummary) -> str:
    """Render the post-generation report. Ends with exactly one newline."""
    lines = [f"errgen generated {len(summary.unions)} unions:", ""]
    lines.append(f"  Source:     {summary.source_label}")
    lines.append(f"  Output:     {summary.output_dir}")
    lines.append("")
    lines.append("  Variants generated:")
    name_width = max((len(u.name) for u in summary.unions), default=0)
    for u in summary.unions:
        lines.append(
            f"    {u.name.ljust(name_width)}  {u.total:>4}  "
            f"({u.empty} empty, {u.positional} positional, {u.named} named)"
        )

    lines.append("")
    lines.append("  Files written:")
    for file_result in summary.files:
        lines.append(f"    {file_result.filename:<28} {file_result.line_count:>6,} lines")

    total_lines = sum(f.line_count for f in summary.files)
    lines.append("")
    lines.append(f"  Total: {total_lines:,} lines across {len(summary.files)} files")
    lines.append("")
    return "\n".join(lines)


# ===--- Main ---=== #


def main(argv: list[str] | None = None):
    try:
        config = build_config(argv)
    except ConfigError as err:
        print(f"Config error [{err.code}]: {err.message}")
        if err.suggestion:
            print(f"Hint: {err.suggestion}")
        raise SystemExit(1) from err

    try:
        if isinstance(config, DiscoveryConfig):
            run_discovery(config)
        else:
            run_generate(config)
    except GenerationError as err:
        print(
            f"{config.declarations}: error: {err.location}: {err.message} [{err.code}]",
            file=sys.stderr,
        )
        raise SystemExit(1) from err
    except (OSError, ET.ParseError, DeclarationError) as err:
        print(f"Error: {err}")
        raise SystemExit(1) from err
    except ValueError as err:
        print(f"Internal error: {err}")
        raise SystemExit(1) from err


if __name__ == "__main__":
    main()
