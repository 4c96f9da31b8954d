"""Tests for candidate merging."""

import pytest

from codebound import merger
from codebound.dependency import jaccard
from codebound.merger import merge_candidates, merged_name, referenced_identifiers
from codebound.models import DeclarationNode, ModuleCandidate, NodeArena, NodeKind


def _candidate(name, files, keywords=(), cohesion=0.5, members=(), **kwargs):
    return ModuleCandidate(
        name=name,
        members=set(members),
        files=set(files),
        semantic_keywords=set(keywords),
        cohesion_score=cohesion,
        **kwargs,
    )


def _assert_no_heavy_overlap(candidates):
    for i in range(len(candidates)):
        for j in range(i + 1, len(candidates)):
            assert jaccard(candidates[i].files, candidates[j].files) <= 0.5


@pytest.fixture
def comparisons(monkeypatch):
    """Count the set comparisons the merger performs."""
    calls = []

    def counting_jaccard(a, b):
        calls.append((a, b))
        return jaccard(a, b)

    monkeypatch.setattr(merger, "jaccard", counting_jaccard)
    return calls


@pytest.fixture
def billing_arena() -> NodeArena:
    """Invoice and ledger files that reference each other heavily."""
    return NodeArena.build([
        DeclarationNode(NodeKind.STRUCT, "Invoice", "billing/invoice.go", 3, references=("Ledger",)),
        DeclarationNode(NodeKind.FUNCTION, "IssueInvoice", "billing/invoice.go", 8,
                        references=("Ledger", "Invoice"), called_identifiers=("PostEntry",)),
        DeclarationNode(NodeKind.STRUCT, "Ledger", "billing/ledger.go", 3, references=("Invoice",)),
        DeclarationNode(NodeKind.FUNCTION, "PostEntry", "billing/ledger.go", 7,
                        references=("Ledger", "Invoice")),
    ])


def test_high_overlap_is_merged():
    """Candidates sharing more than half their files merge."""
    merged = merge_candidates([
        _candidate("user", ["u1.go", "u2.go"], ["user"]),
        _candidate("account", ["u1.go", "u2.go", "u3.go"], ["account"]),
    ])

    assert len(merged) == 1
    assert merged[0].files == {"u1.go", "u2.go", "u3.go"}


def test_half_overlap_is_kept_apart():
    """Exactly half overlap does not merge."""
    merged = merge_candidates([
        _candidate("a", ["x.go"]),
        _candidate("b", ["x.go", "y.go"]),
    ])
    assert len(merged) == 2


def test_absorption_is_transitive_within_a_pass():
    """Overlap is measured against the growing merged file set."""
    merged = merge_candidates([
        _candidate("a", ["1", "2", "3"]),
        _candidate("b", ["1", "2", "3", "4"]),
        _candidate("c", ["2", "3", "4", "5"]),
    ])
    assert len(merged) == 1
    assert merged[0].files == {"1", "2", "3", "4", "5"}


def test_result_never_overlaps_more_than_half():
    """No two merged candidates share more than half their files."""
    candidates = [
        _candidate(f"c{i}", [f"f{j}" for j in range(i, i + 4)]) for i in range(0, 12, 2)
    ]
    merged = merge_candidates(candidates)
    _assert_no_heavy_overlap(merged)


def test_fields_are_unioned_and_cohesion_averaged():
    """Members, keywords and dependencies are unioned; cohesion is averaged."""
    merged = merge_candidates([
        _candidate("a", ["x.go"], ["invoice"], cohesion=0.2, members={1}, external_dependencies={"Ledger"}),
        _candidate("b", ["x.go"], ["payment"], cohesion=0.6, members={2}, source="dependency"),
    ])[0]

    assert merged.members == {1, 2}
    assert merged.semantic_keywords == {"invoice", "payment"}
    assert merged.external_dependencies == {"Ledger"}
    assert abs(merged.cohesion_score - 0.4) < 1e-9


def test_user_declared_name_wins():
    """A user-declared candidate names the merged group."""
    merged = merge_candidates([
        _candidate("billing", ["x.go", "y.go"], ["invoice"], cohesion=0.9),
        _candidate("payments", ["x.go", "y.go"], user_declared=True, description="Money"),
    ])[0]

    assert merged.name == "payments"
    assert merged.user_declared
    assert merged.description == "Money"


def test_largest_first_above_limit():
    """Above the limit the largest candidate absorbs first."""
    candidates = [_candidate(f"c{i}", [f"f{i}.go"]) for i in range(50)]
    candidates.append(_candidate("big", [f"f{i}.go" for i in range(50)]))

    merged = merge_candidates(candidates, max_candidates=10)

    _assert_no_heavy_overlap(merged)
    assert len(merged) == 51
    assert merged[0].name == "big"


def test_disjoint_candidates_are_never_compared(comparisons):
    """Candidates without a shared file cost no comparisons."""
    candidates = [_candidate(f"c{i}", [f"d{i}/f.go"]) for i in range(3000)]
    candidates.append(_candidate("pair", ["d7/f.go", "d7/g.go"]))

    merged = merge_candidates(candidates)

    assert len(merged) == 3001
    assert len(comparisons) == 1


def test_same_directory_candidates_without_shared_identifiers(comparisons):
    """The coupling pass only compares candidates that share an identifier."""
    arena = NodeArena.build([
        DeclarationNode(NodeKind.FUNCTION, f"Handler{i}", f"api/h{i}.go", 1, references=(f"Handler{i}",))
        for i in range(2000)
    ])
    candidates = [ModuleCandidate.from_members(f"h{i}", [i], arena) for i in range(len(arena))]

    merged = merge_candidates(candidates, arena)

    assert len(merged) == 2000
    assert comparisons == []


def test_keyword_frequency_weighted_by_cohesion():
    """Keyword score sums ``1 + cohesion`` over carriers."""
    group = [
        _candidate("s", [], ["order"], cohesion=0.1),
        _candidate("d", [], ["order", "queue"], cohesion=0.9),
    ]
    assert merged_name(group) == "order"


def test_merged_name_falls_back_to_first_name():
    """Without meaningful keywords the first name is kept."""
    group = [_candidate("api", [], ["api"]), _candidate("x", [], ["db"])]
    assert merged_name(group) == "api"


def test_referenced_identifiers(billing_arena):
    """References and call targets that name project declarations."""
    invoice = ModuleCandidate.from_members("invoice", [0, 1], billing_arena)
    assert referenced_identifiers(invoice, billing_arena) == {"Ledger", "Invoice", "PostEntry"}


def test_coupled_files_in_one_directory_merge(billing_arena):
    """Same-directory candidates referencing the same declarations merge."""
    candidates = [
        ModuleCandidate.from_members("invoice", [0, 1], billing_arena, semantic_keywords={"invoice"}),
        ModuleCandidate.from_members("ledger", [2, 3], billing_arena, semantic_keywords={"ledger"}),
    ]

    merged = merge_candidates(candidates, billing_arena)

    assert len(merged) == 1
    assert merged[0].files == {"billing/invoice.go", "billing/ledger.go"}
    assert merged[0].external_dependencies == set()


def test_without_arena_only_file_overlap_counts(billing_arena):
    """Without an arena the coupling pass is skipped."""
    candidates = [
        ModuleCandidate.from_members("invoice", [0, 1], billing_arena),
        ModuleCandidate.from_members("ledger", [2, 3], billing_arena),
    ]
    assert len(merge_candidates(candidates)) == 2
