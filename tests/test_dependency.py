"""Tests for pairwise dependency facts."""

import pytest

from codebound.dependency import (
    build_facts,
    dependency_strength,
    external_dependencies,
    jaccard,
    name_similarity,
    semantic_similarity,
    tokenize_name,
)
from codebound.models import DeclarationNode, NodeArena, NodeKind


def _fn(name, file="svc/a.go", line=1, calls=(), refs=()):
    return DeclarationNode(
        kind=NodeKind.FUNCTION, name=name, file=file, line=line,
        called_identifiers=tuple(calls), references=tuple(refs),
    )


def _struct(name, file="svc/a.go", line=1, refs=()):
    return DeclarationNode(kind=NodeKind.STRUCT, name=name, file=file, line=line, references=tuple(refs))


class TestTokens:
    """Tests for name tokens and similarity."""

    @pytest.mark.parametrize(
        "name, tokens",
        [
            ("UserService", ["user", "service"]),
            ("get_user_by_id", ["get", "user"]),
            ("HTTPServer", ["http", "server"]),
            ("ID", []),
        ],
    )
    def test_tokenize_name(self, name, tokens):
        """Test camelCase and snake_case names split into tokens."""
        assert tokenize_name(name) == tokens

    def test_jaccard(self):
        """Test Jaccard similarity of sets."""
        assert jaccard({"a", "b"}, {"b", "c"}) == pytest.approx(1 / 3)
        assert jaccard(set(), set()) == 0.0

    def test_semantic_similarity(self):
        """Test semantic similarity of token sets."""
        assert semantic_similarity("CreateUser", "UserCreate") == 1.0
        assert semantic_similarity("CreateUser", "ListOrders") == 0.0
        assert semantic_similarity("ID", "UserID") == 0.0

    def test_name_similarity(self):
        """Test name similarity of declarations."""
        assert name_similarity("user", "user") == 1.0
        assert name_similarity("User", "Users") > 0.5
        assert name_similarity("", "x") == 0.0


class TestDependencyStrength:
    """Tests for weighted dependency strength."""

    def test_reference_same_file(self):
        """Test a reference within one file."""
        a = _struct("Invoice", refs=["Customer"])
        b = _struct("Customer", line=10)
        # 0.8 reference + 0.4 file + 0.2 directory, capped
        assert dependency_strength(a, b) == 1.0

    def test_call_across_directories(self):
        """Test a call across directories."""
        a = _fn("Checkout", file="cart/cart.go", calls=["billing.Charge"])
        b = _fn("Charge", file="billing/charge.go")
        assert dependency_strength(a, b) == pytest.approx(0.6)

    def test_same_directory_only(self):
        """Test nodes sharing only a directory."""
        a = _fn("Compute", file="misc/alpha.go")
        b = _fn("Wobble", file="misc/zeta.go")
        assert dependency_strength(a, b) == pytest.approx(0.2)

    def test_semantic_component(self):
        """Test the semantic component of strength."""
        a = _fn("LoadReport", file="a/x.go")
        b = _fn("SaveReport", file="b/y.go")
        assert dependency_strength(a, b) == pytest.approx(0.3 * (1 / 3))

    def test_symmetric(self):
        """Test strength is symmetric."""
        a = _fn("Checkout", file="cart/cart.go", calls=["Charge"], refs=["Cart"])
        b = _fn("Charge", file="cart/pay.go")
        assert dependency_strength(a, b) == dependency_strength(b, a)


class TestArenaFacts:
    """Tests for arena-wide facts."""

    def test_build_facts(self):
        """Test facts are produced for every related pair."""
        arena = NodeArena.build([
            _struct("Order", file="order/order.go", line=1),
            _fn("PlaceOrder", file="order/order.go", line=5, refs=["Order"]),
            _fn("Ship", file="ship/ship.go", line=1),
        ])
        kinds = {(f.source, f.target, f.kind) for f in build_facts(arena)}

        assert ("Order", "PlaceOrder", "reference") in kinds
        assert ("Order", "PlaceOrder", "co_location") in kinds
        assert not any("Ship" in (s, t) for s, t, _ in kinds)

    def test_external_dependencies(self):
        """Test external dependencies exclude the members themselves."""
        arena = NodeArena.build([
            _struct("Order", file="order/order.go", line=1),
            _fn("PlaceOrder", file="order/order.go", line=5, refs=["Order", "Customer"], calls=["pay.Charge"]),
            _fn("Charge", file="pay/pay.go", line=1),
        ])
        place = next(i for i, n in enumerate(arena.nodes) if n.name == "PlaceOrder")
        order = next(i for i, n in enumerate(arena.nodes) if n.name == "Order")

        # Customer is not a project declaration; Order is inside the member set.
        assert external_dependencies([place, order], arena) == {"Charge"}
