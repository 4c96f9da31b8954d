"""Tests for the Go and Python structural extractors."""

from pathlib import Path

import pytest

from codebound.errors import ExtractionError
from codebound.models import NodeKind
from codebound.parser import (
    AstPythonExtractor,
    GoExtractor,
    PythonExtractor,
    extract_file,
    extractor_for,
    infer_operation,
    sql_tables,
    supported_extensions,
)


def _by_name(nodes, name):
    matches = [n for n in nodes if n.name == name]
    assert matches, f"{name} not extracted"
    return matches[0]


@pytest.fixture(params=[PythonExtractor, AstPythonExtractor], ids=["tree-sitter", "ast"])
def python_extractor(request):
    """Both Python extractors must agree on the sample module."""
    return request.param()


# ===================================================================
# Go
# ===================================================================

def test_go_extracts_structs_interfaces_functions(sample_go_code: str):
    """Structs, interfaces and functions come out in document order."""
    result = GoExtractor().extract(sample_go_code, "billing/invoice.go")

    assert [n.name for n in result.structs] == ["Invoice"]
    assert [n.name for n in result.interfaces] == ["InvoiceStore"]
    assert [n.name for n in result.functions] == ["NewInvoice", "Save", "Find", "audit"]
    assert all(n.file == "billing/invoice.go" for n in result.nodes)


def test_go_struct_fields_and_references(sample_go_code: str):
    """Struct fields, including embedded ones, become members."""
    result = GoExtractor().extract(sample_go_code, "invoice.go")
    invoice = result.structs[0]

    assert invoice.kind is NodeKind.STRUCT
    assert invoice.line == 9
    assert [m.name for m in invoice.members] == ["ID", "Customer", "Lines", "Note", "Mutex"]
    assert invoice.members[-1].type == "sync.Mutex"
    assert "Customer" in invoice.references
    assert "LineItem" in invoice.references
    assert "int64" not in invoice.references
    assert "Invoice" not in invoice.references


def test_go_interface_methods(sample_go_code: str):
    """Interface methods are members; parameter names are not references."""
    result = GoExtractor().extract(sample_go_code, "invoice.go")
    store = result.interfaces[0]

    assert [m.name for m in store.members] == ["Save", "Find"]
    assert store.references == ("Invoice",)


def test_go_method_receiver_becomes_owner(sample_go_code: str):
    """A method's receiver type is its owner and a reference."""
    result = GoExtractor().extract(sample_go_code, "invoice.go")
    save = _by_name(result.functions, "Save")

    assert save.owner == "SQLStore"
    assert "SQLStore" in save.references
    assert "Invoice" in save.references
    assert "audit" in save.called_identifiers
    assert "fmt.Errorf" in save.called_identifiers
    assert "s.db.Exec" in save.called_identifiers


def test_go_function_params_and_results(sample_go_code: str):
    """Parameters, variadic ones included, become members."""
    result = GoExtractor().extract(sample_go_code, "invoice.go")
    new_invoice = _by_name(result.functions, "NewInvoice")

    assert [m.name for m in new_invoice.members] == ["c", "lines"]
    assert new_invoice.members[1].type == "...LineItem"
    assert set(new_invoice.references) >= {"Customer", "LineItem", "Invoice"}
    assert new_invoice.owner is None


def test_go_table_access_from_sql_literals(sample_go_code: str):
    """SQL in interpreted and raw string literals yields table facts."""
    result = GoExtractor().extract(sample_go_code, "invoice.go")

    tables = {(f.function, f.table) for f in result.database_access}
    assert tables == {("Save", "invoices"), ("Find", "invoices")}


def test_go_braces_in_strings_and_comments_are_ignored(sample_go_code: str):
    """Braces inside literals and comments do not confuse extraction."""
    result = GoExtractor().extract(sample_go_code, "invoice.go")
    audit = _by_name(result.functions, "audit")

    assert audit.called_identifiers == ("fmt.Println",)


@pytest.mark.parametrize(
    "result_type",
    ["interface{}", "map[string]interface{}", "struct{ A int }", "(map[string]interface{}, error)"],
)
def test_go_brace_result_types_keep_body(result_type: str):
    """Result types containing braces do not hide the function body."""
    source = (
        "package repo\n\n"
        f"func (r *Repo) Load(id int) {result_type} {{\n"
        "\trow := r.db.QueryRow(\"SELECT name FROM users WHERE id = ?\", id)\n"
        "\treturn decode(row)\n"
        "}\n\n"
        "func DeleteAll(r *Repo) {\n"
        "\tr.db.Exec(\"DELETE FROM users\")\n"
        "}\n"
    )
    result = GoExtractor().extract(source, "repo/users.go")
    load = _by_name(result.functions, "Load")

    assert load.owner == "Repo"
    assert load.called_identifiers == ("r.db.QueryRow", "decode")
    assert load.table_access == ("users",)
    assert [n.name for n in result.functions] == ["Load", "DeleteAll"]
    facts = {(f.function, f.table, f.operation) for f in result.database_access}
    assert facts == {("Load", "users", "select"), ("DeleteAll", "users", "delete")}


def test_go_syntax_error_raises():
    """Unbalanced braces are a syntax error, not a partial extraction."""
    source = "package x\n\nfunc Broken() {\n\tif true {\n\t\treturn\n}\n"
    with pytest.raises(ExtractionError):
        GoExtractor().extract(source, "broken.go")


def test_go_grouped_type_declarations():
    """Types declared in a ``type ( ... )`` group are all extracted."""
    source = (
        "package x\n\n"
        "type (\n"
        "\tPoint struct {\n\t\tX, Y int\n\t}\n"
        "\tShape interface {\n\t\tArea() float64\n\t}\n"
        "\tID int\n"
        ")\n"
    )
    result = GoExtractor().extract(source, "shapes.go")

    point = _by_name(result.structs, "Point")
    assert [(m.name, m.type) for m in point.members] == [("X", "int"), ("Y", "int")]
    assert point.line == 4
    assert [n.name for n in result.interfaces] == ["Shape"]
    assert len(result) == 2


def test_go_builtin_calls_are_not_recorded():
    """Builtin functions and conversions are not calls to project code."""
    source = "package x\n\nfunc Grow(xs []int) []int {\n\treturn append(xs, len(xs), int(3))\n}\n"
    grow = GoExtractor().extract(source, "grow.go").functions[0]

    assert grow.called_identifiers == ()


def test_go_orm_table_access():
    """``db.Table("x")`` chains give a table fact."""
    source = (
        "package repo\n\n"
        "func DeleteSession(db *gorm.DB, id int) error {\n"
        "\treturn db.Table(\"sessions\").Where(\"id = ?\", id).Delete(nil).Error\n"
        "}\n"
    )
    result = GoExtractor().extract(source, "repo/session.go")

    assert len(result.database_access) == 1
    fact = result.database_access[0]
    assert fact.table == "sessions"
    assert fact.operation == "delete"
    session = result.functions[0]
    assert "db.Table" in session.called_identifiers
    assert "Delete" in session.called_identifiers
    assert "DB" in session.references


# ===================================================================
# Python
# ===================================================================

def test_python_classes_and_interfaces(python_extractor, sample_python_code: str):
    """ABC subclasses are interfaces, other classes are structs."""
    result = python_extractor.extract(sample_python_code, "billing.py")

    assert {n.name for n in result.structs} == {"Invoice", "SqlInvoiceRepository"}
    assert [n.name for n in result.interfaces] == ["InvoiceRepository"]


def test_python_dataclass_fields_become_members(python_extractor, sample_python_code: str):
    """Annotated class attributes become members."""
    result = python_extractor.extract(sample_python_code, "billing.py")
    invoice = _by_name(result.structs, "Invoice")

    assert invoice.line == 8
    assert [m.name for m in invoice.members] == ["number", "customer", "total"]
    assert invoice.references == ("Customer",)


def test_python_methods_have_owner(python_extractor, sample_python_code: str):
    """Methods carry their class as owner."""
    result = python_extractor.extract(sample_python_code, "billing.py")
    owners = {(n.name, n.owner) for n in result.functions}

    assert ("save", "InvoiceRepository") in owners
    assert ("save", "SqlInvoiceRepository") in owners
    assert ("issue_invoice", None) in owners


def test_python_params_skip_self(python_extractor, sample_python_code: str):
    """``self`` is not a parameter; annotations become references."""
    result = python_extractor.extract(sample_python_code, "billing.py")
    issue = _by_name(result.functions, "issue_invoice")

    assert [m.name for m in issue.members] == ["customer", "number"]
    assert set(issue.references) == {"Customer", "Invoice"}


def test_python_nested_definitions_are_skipped(python_extractor, sample_python_code: str):
    """Calls inside nested functions are not attributed to the outer one."""
    result = python_extractor.extract(sample_python_code, "billing.py")
    issue = _by_name(result.functions, "issue_invoice")

    assert "Invoice" in issue.called_identifiers
    assert "notify" not in issue.called_identifiers
    assert "_helper" not in {n.name for n in result.functions}


def test_python_table_access(python_extractor, sample_python_code: str):
    """SQL literals and ``query(Model)`` calls give table facts."""
    result = python_extractor.extract(sample_python_code, "billing.py")
    facts = {(f.function, f.table, f.operation) for f in result.database_access}

    assert ("delete_all", "invoice", "delete") in facts
    assert ("save", "invoices", "select") in facts


def test_python_syntax_error_raises(python_extractor):
    """Unparseable Python raises ExtractionError."""
    with pytest.raises(ExtractionError):
        python_extractor.extract("def broken(:\n", "broken.py")


# ===================================================================
# Helpers and registry
# ===================================================================

def test_sql_tables():
    """Every SQL verb pattern finds its table, in pattern order."""
    text = "SELECT * FROM users u JOIN x; UPDATE accounts SET a = 1; DELETE FROM logs"
    assert sql_tables(text) == ["users", "accounts", "logs"]


@pytest.mark.parametrize(
    "name, calls, expected",
    [
        ("CreateUser", (), "insert"),
        ("save", ("db.create",), "insert"),
        ("UpdateEmail", (), "update"),
        ("purge", ("repo.delete",), "delete"),
        ("ListUsers", (), "select"),
    ],
)
def test_infer_operation(name, calls, expected):
    """Operation comes from the function name first, then its calls."""
    assert infer_operation(name, calls) == expected


def test_extractor_registry():
    """Extensions map to the tree-sitter extractors."""
    assert supported_extensions() == {".go", ".py"}
    assert isinstance(extractor_for("a/b.go"), GoExtractor)
    assert isinstance(extractor_for("a/b.py"), PythonExtractor)
    assert extractor_for("a/b.rs") is None


def test_bad_file_yields_empty_extraction(temp_dir: Path, caplog):
    """A file with syntax errors is skipped with a warning."""
    (temp_dir / "broken.go").write_text("package x\nfunc A() {\n", encoding="utf-8")

    with caplog.at_level("WARNING"):
        result = extract_file(temp_dir, Path("broken.go"))

    assert len(result) == 0
    assert "Skipping broken.go" in caplog.text


def test_missing_file_yields_empty_extraction(temp_dir: Path):
    """An unreadable file gives an empty extraction."""
    assert len(extract_file(temp_dir, Path("missing.go"))) == 0


def test_unsupported_extension(temp_dir: Path):
    """Files without an extractor are ignored."""
    (temp_dir / "notes.txt").write_text("type X struct {}", encoding="utf-8")
    assert len(extract_file(temp_dir, Path("notes.txt"))) == 0
