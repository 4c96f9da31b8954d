"""Pytest configuration and fixtures for codebound tests."""

import logging
import shutil
import tempfile
from pathlib import Path
from typing import Callable, Dict, Generator

import pytest
from rich.logging import RichHandler


@pytest.fixture(autouse=True)
def _isolated_config(tmp_path_factory, monkeypatch):
    """Point the global config file at a throwaway directory in every test."""
    home = tmp_path_factory.mktemp("codebound_home")
    monkeypatch.setattr("codebound.config.BASE_DIR", home)
    monkeypatch.setattr("codebound.config.CONFIG_FILE", home / "config.toml")


@pytest.fixture(autouse=True)
def _restore_root_logger():
    """CLI commands reconfigure the root logger; undo that after each test."""
    root = logging.getLogger()
    level = root.level
    yield
    for handler in list(root.handlers):
        if isinstance(handler, RichHandler):
            root.removeHandler(handler)
    root.setLevel(level)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def sample_go_project() -> Path:
    """Three unrelated domain files (user, product, order) in one package."""
    return Path(__file__).parent / "fixtures" / "shop"


@pytest.fixture
def make_project(temp_dir: Path) -> Callable[[Dict[str, str]], Path]:
    """Write ``{relative_path: source}`` into a fresh project directory."""

    def _make(files: Dict[str, str]) -> Path:
        root = temp_dir / "project"
        for rel, content in files.items():
            path = root / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        root.mkdir(parents=True, exist_ok=True)
        return root

    return _make


@pytest.fixture
def sample_go_code() -> str:
    """Sample Go code for testing the extractor."""
    return '''package billing

import (
	"database/sql"
	"fmt"
)

// Invoice { is a billed amount }
type Invoice struct {
	ID       int64
	Customer *Customer
	Lines    []LineItem
	Note     string `json:"note"`
	sync.Mutex
}

type InvoiceStore interface {
	Save(inv *Invoice) error
	Find(id int64) (*Invoice, error)
}

func NewInvoice(c *Customer, lines ...LineItem) *Invoice {
	return &Invoice{Customer: c, Lines: lines}
}

func (s *SQLStore) Save(inv *Invoice) error {
	_, err := s.db.Exec("INSERT INTO invoices (id, note) VALUES (?, ?)", inv.ID, inv.Note)
	if err != nil {
		return fmt.Errorf("save invoice: %w", err)
	}
	audit(inv)
	return nil
}

func (s *SQLStore) Find(id int64) (*Invoice, error) {
	row := s.db.QueryRow(`SELECT id, note FROM invoices WHERE id = ?`, id)
	inv := &Invoice{}
	return inv, row.Scan(&inv.ID, &inv.Note)
}

func audit(inv *Invoice) {
	fmt.Println("audit {", inv.ID)
}

var _ = sql.ErrNoRows
'''


@pytest.fixture
def sample_python_code() -> str:
    """Sample Python code for testing the extractor."""
    return '''"""Billing module."""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class Invoice:
    """A billed amount."""

    number: str
    customer: "Customer"
    total: float = 0.0


class InvoiceRepository(ABC):
    @abstractmethod
    def save(self, invoice: Invoice) -> None:
        ...


class SqlInvoiceRepository(InvoiceRepository):
    def save(self, invoice: Invoice) -> None:
        """Persist an invoice."""
        self.conn.execute("INSERT INTO invoices (number) VALUES (?)", (invoice.number,))

    def delete_all(self) -> None:
        self.session.query(Invoice).delete()


def issue_invoice(customer: "Customer", number: str) -> Invoice:
    invoice = Invoice(number=number, customer=customer)

    def _helper():
        return notify(customer)

    return invoice
'''
