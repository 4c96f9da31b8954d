"""Structural extraction of declarations from source files.

Each supported language has one :class:`StructuralExtractor` that turns a
file's text into :class:`~codebound.models.DeclarationNode` objects and
:class:`~codebound.models.DatabaseAccessFact` records.  The rest of the
pipeline only sees those two types, never the extractor internals.

- **Go**: Tree-sitter (``tree_sitter_go``).
- **Python**: Tree-sitter (``tree_sitter_python``), with the built-in
  ``ast`` module as fallback when the grammar cannot be loaded.

A file whose syntax tree contains errors is rejected with
:class:`~codebound.errors.ExtractionError` rather than half-extracted.
"""

from __future__ import annotations

import ast
import importlib
import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from tree_sitter import Language, Parser as TSParser

from .errors import ExtractionError
from .models import DatabaseAccessFact, DeclarationNode, FileExtraction, Member, NodeKind

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Language <-> file-extension mapping (extensible)
# ---------------------------------------------------------------------------
LANGUAGE_MAP: Dict[str, str] = {
    ".go": "go",
    ".py": "python",
}

# Map language name -> module that provides the tree-sitter Language
_GRAMMAR_MODULES: Dict[str, str] = {
    "go": "tree_sitter_go",
    "python": "tree_sitter_python",
}

# ---------------------------------------------------------------------------
# Table-access patterns shared by every language
# ---------------------------------------------------------------------------
ORM_TABLE_RE = re.compile(r"""\.Table\s*\(\s*["`'](\w+)["`']\s*\)""", re.IGNORECASE)
ORM_MODEL_RE = re.compile(r"\.Model\s*\(\s*&(\w+)\s*\{")
SQL_TABLE_PATTERNS = (
    re.compile(r"\bSELECT\b[^;]*?\bFROM\s+[`\"']?(\w+)", re.IGNORECASE),
    re.compile(r"\bINSERT\s+INTO\s+[`\"']?(\w+)", re.IGNORECASE),
    re.compile(r"\bUPDATE\s+[`\"']?(\w+)[`\"']?\s+SET\b", re.IGNORECASE),
    re.compile(r"\bDELETE\s+FROM\s+[`\"']?(\w+)", re.IGNORECASE),
)

_CAMEL_BOUNDARY_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")
_IDENTIFIER_RE = re.compile(r"[A-Za-z_]\w*")


def snake_case(name: str) -> str:
    return _CAMEL_BOUNDARY_RE.sub("_", name).lower()


def sql_tables(text: str) -> List[str]:
    """Return table names referenced by literal SQL or ORM calls in *text*."""
    tables: List[str] = []
    for match in ORM_TABLE_RE.finditer(text):
        tables.append(match.group(1))
    for match in ORM_MODEL_RE.finditer(text):
        tables.append(snake_case(match.group(1)))
    for pattern in SQL_TABLE_PATTERNS:
        for match in pattern.finditer(text):
            tables.append(match.group(1))
    return _unique(tables)


def infer_operation(function_name: str, calls: Iterable[str]) -> str:
    """Guess the database operation from the function name and call tokens."""
    name = function_name.lower()
    call_text = " ".join(calls).lower()
    if "create" in name or "insert" in name or "create" in call_text:
        return "insert"
    if "update" in name or "update" in call_text:
        return "update"
    if "delete" in name or "delete" in call_text:
        return "delete"
    return "select"


def access_facts(node: DeclarationNode) -> List[DatabaseAccessFact]:
    operation = infer_operation(node.name, node.called_identifiers)
    return [
        DatabaseAccessFact(table=table, operation=operation, file=node.file, function=node.name)
        for table in node.table_access
    ]


def _unique(items: Iterable[str]) -> List[str]:
    seen: Set[str] = set()
    ordered: List[str] = []
    for item in items:
        if item and item not in seen:
            seen.add(item)
            ordered.append(item)
    return ordered


# ===================================================================
# Abstract extractor interface
# ===================================================================

class StructuralExtractor(ABC):
    """Turns one source file into declaration nodes."""

    language: str = ""
    extensions: Tuple[str, ...] = ()

    @abstractmethod
    def extract(self, content: str, file_path: str) -> FileExtraction:
        """Extract declarations from *content*.

        Raises:
            ExtractionError: when the file cannot be parsed reliably.
        """
        ...


# ===================================================================
# Tree-sitter plumbing
# ===================================================================

_LANGUAGES: Dict[str, Optional[Language]] = {}


def load_language(lang: str) -> Optional[Language]:
    """Load the tree-sitter grammar for *lang*, or ``None`` if unavailable.

    Results are cached, so a missing grammar is only reported once.
    """
    if lang in _LANGUAGES:
        return _LANGUAGES[lang]

    ts_lang: Optional[Language] = None
    mod_name = _GRAMMAR_MODULES.get(lang)
    if mod_name is None:
        logger.warning("No grammar module mapped for language '%s'", lang)
    else:
        try:
            mod = importlib.import_module(mod_name)
            # tree-sitter >=0.22 per-language packages expose a
            # language() function that returns the Language capsule.
            ts_lang = Language(mod.language())
            logger.debug("Loaded tree-sitter grammar for %s", lang)
        except ImportError:
            logger.warning(
                "Grammar package '%s' not installed for language '%s'. "
                "Install with: pip install %s",
                mod_name, lang, mod_name.replace("_", "-"),
            )
        except Exception as exc:
            logger.warning("Could not load tree-sitter grammar for %s: %s", lang, exc)

    _LANGUAGES[lang] = ts_lang
    return ts_lang


def _text(node: Any) -> str:
    if node is None:
        return ""
    return node.text.decode("utf-8", errors="replace")


def _line(node: Any) -> int:
    return node.start_point[0] + 1


def _first_error_line(root: Any) -> int:
    stack = [root]
    while stack:
        node = stack.pop()
        if node.type == "ERROR" or node.is_missing:
            return _line(node)
        if node.has_error:
            stack.extend(reversed(node.children))
    return _line(root)


class TreeSitterExtractor(StructuralExtractor):
    """Base for extractors that walk a tree-sitter syntax tree."""

    def __init__(self) -> None:
        self._ts_language = load_language(self.language)

    @property
    def available(self) -> bool:
        return self._ts_language is not None

    def _parse(self, content: str, file_path: str) -> Any:
        if self._ts_language is None:
            raise ExtractionError(f"No tree-sitter grammar loaded for {self.language}")
        # Parsers are not thread-safe; files are extracted from a worker pool.
        parser = TSParser(self._ts_language)
        root = parser.parse(content.encode("utf-8")).root_node
        if root.has_error:
            raise ExtractionError(
                f"Syntax error in {file_path} near line {_first_error_line(root)}"
            )
        return root


# ===================================================================
# Go
# ===================================================================

GO_BUILTIN_FUNCS: Set[str] = {
    "append", "cap", "clear", "close", "complex", "copy", "delete", "imag", "len",
    "make", "max", "min", "new", "panic", "print", "println", "real", "recover",
}
GO_BUILTIN_TYPES: Set[str] = {
    "any", "bool", "byte", "comparable", "complex64", "complex128", "error",
    "float32", "float64", "int", "int8", "int16", "int32", "int64", "rune",
    "string", "uint", "uint8", "uint16", "uint32", "uint64", "uintptr",
}


class GoExtractor(TreeSitterExtractor):
    """Extract struct and interface types, functions and methods from Go."""

    language = "go"
    extensions = (".go",)

    def extract(self, content: str, file_path: str) -> FileExtraction:
        root = self._parse(content, file_path)

        result = FileExtraction()
        for child in root.named_children:
            if child.type == "type_declaration":
                for spec in child.named_children:
                    if spec.type == "type_spec":
                        node = self._process_type(spec, file_path)
                        if node is not None:
                            result.add(node)
            elif child.type in ("function_declaration", "method_declaration"):
                node = self._process_function(child, file_path)
                result.add(node)
                result.database_access.extend(access_facts(node))
        return result

    def _process_type(self, spec: Any, file_path: str) -> Optional[DeclarationNode]:
        name = _text(spec.child_by_field_name("name"))
        type_node = spec.child_by_field_name("type")
        if type_node is None:
            return None

        if type_node.type == "struct_type":
            kind = NodeKind.STRUCT
            members, references = _go_struct_members(type_node)
        elif type_node.type == "interface_type":
            kind = NodeKind.INTERFACE
            members, references = _go_interface_members(type_node)
        else:
            return None

        return DeclarationNode(
            kind=kind,
            name=name,
            file=file_path,
            line=_line(spec),
            members=tuple(members),
            references=tuple(r for r in _unique(references) if r != name),
        )

    def _process_function(self, decl: Any, file_path: str) -> DeclarationNode:
        name = _text(decl.child_by_field_name("name"))
        owner: Optional[str] = None
        references: List[str] = []

        receiver = decl.child_by_field_name("receiver")
        if receiver is not None:
            receiver_refs = _go_type_refs(receiver)
            if receiver_refs:
                owner = receiver_refs[0]
                references.append(owner)

        params = decl.child_by_field_name("parameters")
        members = _go_params(params) if params is not None else []
        if params is not None:
            references.extend(_go_type_refs(params))
        result = decl.child_by_field_name("result")
        if result is not None:
            references.extend(_go_type_refs(result))

        body = decl.child_by_field_name("body")
        calls = _go_calls(body) if body is not None else []
        tables = sql_tables(_text(body)) if body is not None else []

        return DeclarationNode(
            kind=NodeKind.FUNCTION,
            name=name,
            file=file_path,
            line=_line(decl),
            members=tuple(members),
            called_identifiers=tuple(calls),
            owner=owner,
            table_access=tuple(tables),
            references=tuple(_unique(references)),
        )


def _go_type_refs(node: Any) -> List[str]:
    """Named, non-builtin types mentioned anywhere under *node*.

    Package qualifiers are dropped (``sql.DB`` gives ``DB``).  Parameter
    names are plain identifiers, so they never show up here.
    """
    names: List[str] = []
    stack = [node]
    while stack:
        current = stack.pop()
        if current.type == "type_identifier":
            names.append(_text(current))
        stack.extend(reversed(current.children))
    return _unique(n for n in names if n not in GO_BUILTIN_TYPES)


def _embedded_name(type_text: str) -> str:
    return type_text.split("[", 1)[0].rsplit(".", 1)[-1].lstrip("*")


def _go_struct_members(struct_type: Any) -> Tuple[List[Member], List[str]]:
    members: List[Member] = []
    references: List[str] = []
    for field_list in struct_type.named_children:
        if field_list.type != "field_declaration_list":
            continue
        for decl in field_list.named_children:
            if decl.type != "field_declaration":
                continue
            type_node = decl.child_by_field_name("type")
            if type_node is None:
                continue
            type_text = _text(type_node)
            names = decl.children_by_field_name("name")
            if names:
                members.extend(Member(name=_text(n), type=type_text) for n in names)
            else:
                members.append(Member(name=_embedded_name(type_text), type=type_text))
            references.extend(_go_type_refs(type_node))
    return members, references


def _go_interface_members(interface_type: Any) -> Tuple[List[Member], List[str]]:
    members: List[Member] = []
    references: List[str] = []
    for elem in interface_type.named_children:
        if elem.type in ("method_elem", "method_spec"):
            params = elem.child_by_field_name("parameters")
            result = elem.child_by_field_name("result")
            signature = _text(params)
            if result is not None:
                signature = f"{signature} {_text(result)}"
            members.append(Member(name=_text(elem.child_by_field_name("name")), type=signature))
            for part in (params, result):
                if part is not None:
                    references.extend(_go_type_refs(part))
        elif elem.type != "comment":
            # embedded interface or type-set constraint
            references.extend(_go_type_refs(elem))
    return members, references


def _go_params(param_list: Any) -> List[Member]:
    members: List[Member] = []
    for param in param_list.named_children:
        if param.type not in ("parameter_declaration", "variadic_parameter_declaration"):
            continue
        type_text = _text(param.child_by_field_name("type"))
        if param.type == "variadic_parameter_declaration":
            type_text = "..." + type_text
        names = param.children_by_field_name("name")
        if names:
            members.extend(Member(name=_text(n), type=type_text) for n in names)
        else:
            members.append(Member(name="", type=type_text))
    return members


def _go_call_name(func: Any) -> Optional[str]:
    """Dotted name of a call target; chained calls keep only the last selector."""
    if func.type == "identifier":
        return _text(func)
    if func.type == "selector_expression":
        field = _text(func.child_by_field_name("field"))
        operand = func.child_by_field_name("operand")
        base = None
        if operand is not None and operand.type in ("identifier", "selector_expression"):
            base = _go_call_name(operand)
        return f"{base}.{field}" if base else field
    return None


def _go_calls(body: Any) -> List[str]:
    calls: List[str] = []
    stack = [body]
    while stack:
        node = stack.pop()
        if node.type == "call_expression":
            func = node.child_by_field_name("function")
            name = _go_call_name(func) if func is not None else None
            if name and name not in GO_BUILTIN_FUNCS and name not in GO_BUILTIN_TYPES:
                calls.append(name)
        stack.extend(reversed(node.children))
    return _unique(calls)


# ===================================================================
# Python
# ===================================================================

PY_INTERFACE_BASES: Set[str] = {"ABC", "Protocol", "Interface"}
PY_BUILTIN_TYPES: Set[str] = {
    "Any", "Callable", "Dict", "FrozenSet", "Iterable", "Iterator", "List",
    "Mapping", "None", "Optional", "Sequence", "Set", "Tuple", "Type", "Union",
    "bool", "bytes", "dict", "float", "frozenset", "int", "list", "object",
    "set", "str", "tuple", "type", "typing",
}
PY_ORM_TABLE_ATTRS: Set[str] = {"table", "Table", "from_"}
PY_ORM_MODEL_ATTRS: Set[str] = {"query", "Model", "model"}
_PY_DEFINITIONS = ("function_definition", "class_definition", "decorated_definition")


class PythonExtractor(TreeSitterExtractor):
    """Extract classes and functions from a tree-sitter Python tree."""

    language = "python"
    extensions = (".py",)

    def extract(self, content: str, file_path: str) -> FileExtraction:
        root = self._parse(content, file_path)

        result = FileExtraction()
        for child in root.named_children:
            definition = _unwrap_decorated(child)
            if definition.type == "class_definition":
                self._process_class(definition, file_path, result)
            elif definition.type == "function_definition":
                self._process_function(definition, file_path, None, result)
        return result

    def _process_class(self, node: Any, file_path: str, result: FileExtraction) -> None:
        name = _text(node.child_by_field_name("name"))
        base_names: List[str] = []
        is_interface = False
        superclasses = node.child_by_field_name("superclasses")
        if superclasses is not None:
            for arg in superclasses.named_children:
                if arg.type == "keyword_argument":
                    keyword = _text(arg.child_by_field_name("name"))
                    value = arg.child_by_field_name("value")
                    if keyword == "metaclass" and value is not None and _ts_py_name(value) == "ABCMeta":
                        is_interface = True
                elif arg.type != "comment":
                    base_names.append(_ts_py_name(arg))
        is_interface = is_interface or any(b in PY_INTERFACE_BASES for b in base_names)

        body = node.child_by_field_name("body")
        statements = list(body.named_children) if body is not None else []

        members: List[Member] = []
        references: List[str] = [b for b in base_names if b and b not in PY_INTERFACE_BASES]
        for stmt in statements:
            assignment = _annotated_assignment(stmt)
            if assignment is not None:
                target, annotation = assignment
                members.append(Member(name=_text(target), type=_text(annotation)))
                references.extend(_ts_annotation_refs(annotation))
                continue
            definition = _unwrap_decorated(stmt)
            if is_interface and definition.type == "function_definition":
                members.append(Member(
                    name=_text(definition.child_by_field_name("name")),
                    type=_ts_py_signature(definition),
                ))

        kind = NodeKind.INTERFACE if is_interface else NodeKind.STRUCT
        result.add(DeclarationNode(
            kind=kind,
            name=name,
            file=file_path,
            line=_line(node),
            members=tuple(members),
            references=tuple(_unique(r for r in references if r != name and r not in PY_BUILTIN_TYPES)),
        ))

        for stmt in statements:
            definition = _unwrap_decorated(stmt)
            if definition.type == "function_definition":
                self._process_function(definition, file_path, name, result)

    def _process_function(
        self,
        node: Any,
        file_path: str,
        owner: Optional[str],
        result: FileExtraction,
    ) -> None:
        params: List[Member] = []
        references: List[str] = [owner] if owner else []
        parameters = node.child_by_field_name("parameters")
        for param in parameters.named_children if parameters is not None else []:
            param_name, annotation = _ts_py_param(param)
            if param_name is None or param_name in ("self", "cls"):
                continue
            params.append(Member(name=param_name, type=_text(annotation)))
            if annotation is not None:
                references.extend(_ts_annotation_refs(annotation))
        returns = node.child_by_field_name("return_type")
        if returns is not None:
            references.extend(_ts_annotation_refs(returns))

        calls, tables = _ts_scan_python_body(node.child_by_field_name("body"))
        decl = DeclarationNode(
            kind=NodeKind.FUNCTION,
            name=_text(node.child_by_field_name("name")),
            file=file_path,
            line=_line(node),
            members=tuple(params),
            called_identifiers=tuple(calls),
            owner=owner,
            table_access=tuple(tables),
            references=tuple(_unique(r for r in references if r not in PY_BUILTIN_TYPES)),
        )
        result.add(decl)
        result.database_access.extend(access_facts(decl))


def _unwrap_decorated(node: Any) -> Any:
    if node.type == "decorated_definition":
        return node.child_by_field_name("definition") or node
    return node


def _annotated_assignment(stmt: Any) -> Optional[Tuple[Any, Any]]:
    """``(target, annotation)`` for a ``name: Type [= value]`` statement."""
    if stmt.type != "expression_statement" or not stmt.named_children:
        return None
    assignment = stmt.named_children[0]
    if assignment.type != "assignment":
        return None
    target = assignment.child_by_field_name("left")
    annotation = assignment.child_by_field_name("type")
    if target is None or annotation is None or target.type != "identifier":
        return None
    return target, annotation


def _ts_py_name(expr: Any) -> str:
    if expr.type == "identifier":
        return _text(expr)
    if expr.type == "attribute":
        return _text(expr.child_by_field_name("attribute"))
    if expr.type in ("subscript", "generic_type"):
        value = expr.child_by_field_name("value") or (expr.named_children[0] if expr.named_children else None)
        return _ts_py_name(value) if value is not None else ""
    return ""


def _ts_py_param(param: Any) -> Tuple[Optional[str], Any]:
    """Name and annotation node of a parameter; ``*args``/``**kwargs`` give ``None``."""
    if param.type == "identifier":
        return _text(param), None
    if param.type == "typed_parameter":
        first = param.named_children[0] if param.named_children else None
        if first is None or first.type != "identifier":
            return None, None
        return _text(first), param.child_by_field_name("type")
    if param.type in ("default_parameter", "typed_default_parameter"):
        name = param.child_by_field_name("name")
        if name is None or name.type != "identifier":
            return None, None
        return _text(name), param.child_by_field_name("type")
    return None, None


def _ts_py_signature(node: Any) -> str:
    returns = node.child_by_field_name("return_type")
    suffix = f" -> {_text(returns)}" if returns is not None else ""
    return f"{_text(node.child_by_field_name('parameters'))}{suffix}"


def _ts_string_value(node: Any) -> str:
    parts = [_text(c) for c in node.children if c.type == "string_content"]
    if parts:
        return "".join(parts)
    return _text(node).strip("\"'")


def _ts_annotation_refs(annotation: Any) -> List[str]:
    names: List[str] = []
    stack = [annotation]
    while stack:
        node = stack.pop()
        if node.type == "identifier":
            names.append(_text(node))
        elif node.type == "string":
            names.extend(_IDENTIFIER_RE.findall(_ts_string_value(node)))
            continue
        stack.extend(reversed(node.children))
    return [n for n in names if n not in PY_BUILTIN_TYPES]


def _resolve_ts_call_name(func_node: Any) -> Optional[str]:
    """Resolve a Tree-sitter call-function node to a dotted name string."""
    if func_node.type == "identifier":
        return _text(func_node)
    if func_node.type == "attribute":
        parts: List[str] = []
        current = func_node
        while current is not None and current.type == "attribute":
            parts.append(_text(current.child_by_field_name("attribute")))
            current = current.child_by_field_name("object")
        if current is not None and current.type == "identifier":
            parts.append(_text(current))
        return ".".join(reversed(parts)) if parts else None
    if func_node.type == "call":
        inner = func_node.child_by_field_name("function")
        return _resolve_ts_call_name(inner) if inner is not None else None
    return None


def _ts_orm_table(func_node: Any, arguments: Any) -> Optional[str]:
    if arguments is None:
        return None
    args = [a for a in arguments.named_children if a.type != "comment"]
    if not args:
        return None
    attr = _text(func_node.child_by_field_name("attribute"))
    first = args[0]
    if attr in PY_ORM_TABLE_ATTRS and first.type == "string":
        return _ts_string_value(first)
    if attr in PY_ORM_MODEL_ATTRS and first.type == "identifier":
        return snake_case(_text(first))
    return None


def _ts_scan_python_body(body: Any) -> Tuple[List[str], List[str]]:
    """Collect call names and accessed tables, skipping nested definitions."""
    calls: List[str] = []
    tables: List[str] = []
    if body is None:
        return calls, tables

    statements = list(body.named_children)
    if statements and statements[0].type == "expression_statement" \
            and statements[0].named_children and statements[0].named_children[0].type == "string":
        statements = statements[1:]  # docstring

    stack = list(reversed(statements))
    while stack:
        node = stack.pop()
        if node.type in _PY_DEFINITIONS:
            continue
        if node.type == "string":
            tables.extend(sql_tables(_ts_string_value(node)))
            continue
        if node.type == "call":
            func = node.child_by_field_name("function")
            if func is not None:
                name = _resolve_ts_call_name(func)
                if name:
                    calls.append(name)
                if func.type == "attribute":
                    table = _ts_orm_table(func, node.child_by_field_name("arguments"))
                    if table:
                        tables.append(table)
        stack.extend(reversed(node.children))

    return _unique(calls), _unique(tables)


# ===================================================================
# Python: ast fallback
# ===================================================================

class AstPythonExtractor(StructuralExtractor):
    """Fallback Python extractor built on the stdlib ``ast`` module.

    Used only when the ``tree_sitter_python`` grammar cannot be loaded.
    """

    language = "python"
    extensions = (".py",)

    def extract(self, content: str, file_path: str) -> FileExtraction:
        try:
            tree = ast.parse(content)
        except SyntaxError as exc:
            raise ExtractionError(f"SyntaxError in {file_path}: {exc}") from exc

        result = FileExtraction()
        for stmt in tree.body:
            if isinstance(stmt, ast.ClassDef):
                self._process_class(stmt, file_path, result)
            elif isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef)):
                self._process_function(stmt, file_path, None, result)
        return result

    def _process_class(self, node: ast.ClassDef, file_path: str, result: FileExtraction) -> None:
        base_names = [_py_name(base) for base in node.bases]
        is_interface = any(b in PY_INTERFACE_BASES for b in base_names) or any(
            kw.arg == "metaclass" and _py_name(kw.value) == "ABCMeta" for kw in node.keywords
        )

        members: List[Member] = []
        references: List[str] = [b for b in base_names if b and b not in PY_INTERFACE_BASES]
        for stmt in node.body:
            if isinstance(stmt, ast.AnnAssign) and isinstance(stmt.target, ast.Name):
                members.append(Member(name=stmt.target.id, type=ast.unparse(stmt.annotation)))
                references.extend(_annotation_refs(stmt.annotation))
            elif is_interface and isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef)):
                members.append(Member(name=stmt.name, type=_py_signature(stmt)))

        kind = NodeKind.INTERFACE if is_interface else NodeKind.STRUCT
        result.add(DeclarationNode(
            kind=kind,
            name=node.name,
            file=file_path,
            line=node.lineno,
            members=tuple(members),
            references=tuple(_unique(r for r in references if r != node.name and r not in PY_BUILTIN_TYPES)),
        ))

        for stmt in node.body:
            if isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef)):
                self._process_function(stmt, file_path, node.name, result)

    def _process_function(
        self,
        node: ast.AST,
        file_path: str,
        owner: Optional[str],
        result: FileExtraction,
    ) -> None:
        assert isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef))
        params: List[Member] = []
        references: List[str] = [owner] if owner else []
        args = node.args
        for arg in [*args.posonlyargs, *args.args, *args.kwonlyargs]:
            if arg.arg in ("self", "cls"):
                continue
            annotation = ast.unparse(arg.annotation) if arg.annotation is not None else ""
            params.append(Member(name=arg.arg, type=annotation))
            if arg.annotation is not None:
                references.extend(_annotation_refs(arg.annotation))
        if node.returns is not None:
            references.extend(_annotation_refs(node.returns))

        calls, tables = _scan_python_body(node)
        decl = DeclarationNode(
            kind=NodeKind.FUNCTION,
            name=node.name,
            file=file_path,
            line=node.lineno,
            members=tuple(params),
            called_identifiers=tuple(calls),
            owner=owner,
            table_access=tuple(tables),
            references=tuple(_unique(r for r in references if r not in PY_BUILTIN_TYPES)),
        )
        result.add(decl)
        result.database_access.extend(access_facts(decl))


def _py_name(expr: ast.AST) -> str:
    if isinstance(expr, ast.Name):
        return expr.id
    if isinstance(expr, ast.Attribute):
        return expr.attr
    if isinstance(expr, ast.Subscript):
        return _py_name(expr.value)
    return ""


def _py_signature(node: ast.AST) -> str:
    assert isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef))
    returns = f" -> {ast.unparse(node.returns)}" if node.returns is not None else ""
    return f"({ast.unparse(node.args)}){returns}"


def _annotation_refs(annotation: ast.AST) -> List[str]:
    names: List[str] = []
    for sub in ast.walk(annotation):
        if isinstance(sub, ast.Name):
            names.append(sub.id)
        elif isinstance(sub, ast.Attribute):
            names.append(sub.attr)
        elif isinstance(sub, ast.Constant) and isinstance(sub.value, str):
            names.extend(_IDENTIFIER_RE.findall(sub.value))
    return [n for n in names if n not in PY_BUILTIN_TYPES]


def _call_name(expr: ast.AST) -> Optional[str]:
    if isinstance(expr, ast.Name):
        return expr.id
    if isinstance(expr, ast.Attribute):
        parts: List[str] = []
        current: ast.AST = expr
        while isinstance(current, ast.Attribute):
            parts.append(current.attr)
            current = current.value
        if isinstance(current, ast.Name):
            parts.append(current.id)
        return ".".join(reversed(parts)) if parts else None
    if isinstance(expr, ast.Call):
        return _call_name(expr.func)
    return None


def _scan_python_body(func: ast.AST) -> Tuple[List[str], List[str]]:
    """Collect call names and accessed tables, skipping nested definitions."""
    assert isinstance(func, (ast.FunctionDef, ast.AsyncFunctionDef))
    calls: List[str] = []
    tables: List[str] = []

    body = list(func.body)
    if body and isinstance(body[0], ast.Expr) and isinstance(getattr(body[0], "value", None), ast.Constant):
        body = body[1:]  # docstring

    stack: List[ast.AST] = list(body)
    while stack:
        node = stack.pop(0)
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
            continue
        if isinstance(node, ast.Call):
            name = _call_name(node.func)
            if name:
                calls.append(name)
            if isinstance(node.func, ast.Attribute) and node.args:
                first = node.args[0]
                if node.func.attr in PY_ORM_TABLE_ATTRS and isinstance(first, ast.Constant) \
                        and isinstance(first.value, str):
                    tables.append(first.value)
                elif node.func.attr in PY_ORM_MODEL_ATTRS and isinstance(first, ast.Name):
                    tables.append(snake_case(first.id))
        elif isinstance(node, ast.Constant) and isinstance(node.value, str):
            tables.extend(sql_tables(node.value))
        stack.extend(ast.iter_child_nodes(node))

    return _unique(calls), _unique(tables)


# ===================================================================
# Registry
# ===================================================================

def _build_extractors() -> Dict[str, StructuralExtractor]:
    extractors: Dict[str, StructuralExtractor] = {}

    go = GoExtractor()
    if go.available:
        extractors["go"] = go

    python = PythonExtractor()
    if python.available:
        extractors["python"] = python
        logger.debug("Using Tree-sitter extractor for Python")
    else:
        extractors["python"] = AstPythonExtractor()
        logger.info("Using AST fallback extractor for Python")
    return extractors


EXTRACTORS: Dict[str, StructuralExtractor] = _build_extractors()


def supported_extensions() -> Set[str]:
    return {ext for ext, lang in LANGUAGE_MAP.items() if lang in EXTRACTORS}


def extractor_for(file_path: str) -> Optional[StructuralExtractor]:
    """Select the extractor registered for the file's extension."""
    lang = LANGUAGE_MAP.get(Path(file_path).suffix)
    if lang is None:
        return None
    return EXTRACTORS.get(lang)


def extract_file(root: Path, rel_path: Path) -> FileExtraction:
    """Read and extract one file; never raises for a single bad file."""
    rel = rel_path.as_posix()
    extractor = extractor_for(rel)
    if extractor is None:
        return FileExtraction()

    try:
        source = (root / rel_path).read_text(encoding="utf-8", errors="ignore")
    except OSError as exc:
        logger.warning("Could not read %s: %s", rel, exc)
        return FileExtraction()

    try:
        return extractor.extract(source, rel)
    except ExtractionError as exc:
        logger.warning("Skipping %s: %s", rel, exc)
    except Exception as exc:
        logger.warning("Failed to parse %s: %s", rel, exc)
    return FileExtraction()
