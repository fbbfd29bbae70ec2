import copy
import pytest
from unittest.mock import MagicMock, patch
from conceptvault.config import DEFAULT_CONFIG
from conceptvault.controller import KnowledgeVault
from conceptvault.models import AssessmentOutcome, CandidateConcept, Link, Node, QuizContent
from conceptvault.persistence import InMemoryPersistenceStore
from conceptvault.tree_projector import category_folder_id, iter_leaves
from conceptvault.exceptions import ExternalServiceError, NotFoundError, ValidationError


@pytest.fixture
def mock_analyzer():
    analyzer = MagicMock()
    analyzer.analyze.return_value = [CandidateConcept(label="X"), CandidateConcept(label="Y", status="fuzzy")]
    return analyzer


@pytest.fixture
def mock_assessor():
    assessor = MagicMock()
    assessor.evaluate.return_value = AssessmentOutcome(score=85, status="known", feedback="Good", next_step="Next")
    return assessor


@pytest.fixture
def vault(small_store, sequential_ids, mock_analyzer, mock_assessor):
    """Vault over the two-node store with mocked services."""
    return KnowledgeVault(store=small_store, analyzer=mock_analyzer, assessor=mock_assessor,
                          quiz_generator=MagicMock(), id_factory=sequential_ids)


def folder_by_id(tree, folder_id):
    for bucket in tree:
        for folder in bucket.children:
            if folder.id == folder_id:
                return folder
    return None


def test_initial_tree(vault):
    """Test that the vault projects its store on start."""
    assert sorted(leaf.node_id for leaf in iter_leaves(vault.tree)) == ["c1", "root"]


def test_merge_updates_tree_and_persistence(vault):
    """Test that a merge is visible in the tree and stored."""
    vault.merge([CandidateConcept(label="X"), CandidateConcept(label="Y")], "Architecture")

    arch = folder_by_id(vault.tree, category_folder_id("Architecture"))
    assert [leaf.name for leaf in arch.children] == ["Transformer", "X", "Y"]

    nodes, links = vault.persistence.fetch_graph_data("local")
    assert len(nodes) == 4
    assert Link("new_test_0", "new_test_1") in links


def test_folder_state_survives_merge(vault):
    """Test that folder customizations are kept when nodes are added."""
    folder_id = category_folder_id("Architecture")
    vault.toggle_folder(folder_id)
    vault.rename_folder(folder_id, "Design")

    vault.merge([CandidateConcept(label="X")], "Architecture")

    folder = folder_by_id(vault.tree, folder_id)
    assert folder.name == "Design"
    assert folder.is_open is False


def test_analyze_then_save(vault, mock_analyzer):
    """Test the analysis, edit and save flow."""
    pending = vault.analyze("What is attention?")
    assert [c.label for c in pending] == ["X", "Y"]

    vault.edit_candidate(0, label="Attention", status="unknown")
    vault.remove_candidate(1)
    result = vault.save_pending("Concept")

    assert [n.label for n in result.nodes] == ["Attention"]
    assert vault.store.get_node("new_test_0").status == "unknown"

    # The same analysis cannot be saved twice
    with pytest.raises(ValidationError):
        vault.save_pending("Concept")


def test_edit_candidate_validation(vault):
    """Test bad edits of pending concepts."""
    vault.analyze("text")
    with pytest.raises(ValidationError):
        vault.edit_candidate(5, label="Z")
    with pytest.raises(ValidationError):
        vault.edit_candidate(0, status="mastered")
    with pytest.raises(ValidationError):
        vault.edit_candidate(0, weight=3)


def test_save_without_analysis(vault):
    """Test saving when nothing is pending."""
    with pytest.raises(ValidationError):
        vault.save_pending("Core")


def test_stale_analysis_is_discarded(vault):
    """Test that an older analysis response is dropped."""
    first = vault.begin_analysis("first question")
    second = vault.begin_analysis("second question")

    assert vault.complete_analysis(first, [CandidateConcept(label="Old")]) is None
    assert vault.pending_candidates == []

    vault.complete_analysis(second, [CandidateConcept(label="New")])
    assert [c.label for c in vault.pending_candidates] == ["New"]

    # A token can only be applied once
    assert vault.complete_analysis(second, [CandidateConcept(label="Again")]) is None


def test_stale_failure_is_ignored(vault):
    """Test that a failure of a superseded request is not raised."""
    first = vault.begin_analysis("first")
    second = vault.begin_analysis("second")

    assert vault.fail_analysis(first, ExternalServiceError("timeout")) is None
    with pytest.raises(ExternalServiceError):
        vault.fail_analysis(second, ExternalServiceError("timeout"))


def test_analysis_failure_raises(vault, mock_analyzer):
    """Test that a failing analysis leaves the pending list alone."""
    mock_analyzer.analyze.side_effect = ExternalServiceError("down")
    with pytest.raises(ExternalServiceError):
        vault.analyze("text")
    assert vault.pending_candidates == []


def test_blank_analysis_rejected(vault, mock_analyzer):
    """Test that empty input is not sent for analysis."""
    with pytest.raises(ValidationError):
        vault.analyze("   ")
    mock_analyzer.analyze.assert_not_called()


def test_assess_updates_status(vault, mock_assessor):
    """Test that an assessment changes only the node's status."""
    node = vault.assess("c1", "Transformers stack attention layers.")

    assert node.status == "known"
    mock_assessor.evaluate.assert_called_once_with("Transformer", "Transformers stack attention layers.")
    assert vault.persistence.fetch_node("local", "c1").status == "known"
    assert vault.assessment_history("c1")[0].score == 85
    assert vault.last_assessments["c1"].feedback == "Good"


def test_stale_assessment_is_discarded(vault):
    """Test that only the newest assessment of a node applies."""
    first = vault.begin_assessment("c1")
    second = vault.begin_assessment("c1")

    assert vault.complete_assessment(first, AssessmentOutcome(score=10, status="unknown")) is None
    assert vault.store.get_node("c1").status == "fuzzy"

    vault.complete_assessment(second, AssessmentOutcome(score=90, status="known"))
    assert vault.store.get_node("c1").status == "known"


def test_assessments_of_different_nodes_coexist(vault):
    """Test that assessing one node does not supersede another."""
    a = vault.begin_assessment("c1")
    b = vault.begin_assessment("root")

    vault.complete_assessment(b, AssessmentOutcome(score=20, status="unknown"))
    vault.complete_assessment(a, AssessmentOutcome(score=80, status="known"))

    assert vault.store.get_node("root").status == "unknown"
    assert vault.store.get_node("c1").status == "known"


def test_assess_unknown_node(vault):
    """Test assessing a node that does not exist."""
    with pytest.raises(NotFoundError):
        vault.assess("ghost", "some explanation")


def test_request_quiz(vault):
    """Test that a quiz is generated for the node's label."""
    quiz = QuizContent(concept_label="Transformer")
    vault.quiz_generator.generate.return_value = quiz

    assert vault.request_quiz("c1") is quiz
    assert vault.current_quiz is quiz
    vault.quiz_generator.generate.assert_called_once_with("Transformer")


def test_missing_service(small_store):
    """Test calls to services that were not configured."""
    vault = KnowledgeVault(store=small_store)
    with pytest.raises(ExternalServiceError):
        vault.analyze("text")
    with pytest.raises(ExternalServiceError):
        vault.request_quiz("c1")


def test_visibility_and_connections(vault):
    """Test hidden categories and node connections."""
    assert vault.toggle_category_visibility("Core") is True
    assert [n.id for n in vault.visible_nodes()] == ["c1"]
    assert vault.hidden_categories == frozenset({"Core"})

    assert [n.id for n in vault.connections("c1")] == ["root"]
    assert vault.unique_categories() == ["Architecture", "Core"]


def test_notes_and_chat(vault):
    """Test node notes and chat history."""
    vault.save_note("c1", "Transformer", "Encoder and decoder stacks")
    assert vault.note_for("c1").content == "Encoder and decoder stacks"
    with pytest.raises(NotFoundError):
        vault.save_note("ghost", "t", "c")

    vault.record_chat_message("user", "What is attention?")
    vault.record_chat_message("bot", "A weighting scheme", subconcepts=["Softmax"])
    assert [m.sender for m in vault.chat_history()] == ["user", "bot"]
    with pytest.raises(ValidationError):
        vault.record_chat_message("system", "hi")


def test_from_persistence_seeds_new_owner():
    """Test that a new owner starts with the seed graph."""
    persistence = InMemoryPersistenceStore()
    vault = KnowledgeVault.from_persistence(persistence, "alice")

    assert len(vault.store) == 8
    assert len(persistence.fetch_nodes("alice")) == 8


def test_from_persistence_drops_dangling_links():
    """Test that stored links to missing nodes are ignored."""
    persistence = InMemoryPersistenceStore()
    persistence.create_nodes("alice", [Node(id="a", label="A", status="new", weight=1, category="Art")])
    persistence.create_links("alice", [Link("a", "gone")])

    vault = KnowledgeVault.from_persistence(persistence, "alice")
    assert vault.store.links == []
    assert [n.id for n in vault.store.nodes] == ["a"]


def test_from_config(tmp_path):
    """Test building a vault from configuration."""
    config = copy.deepcopy(DEFAULT_CONFIG)
    config["cache_dir"] = str(tmp_path / "cache")
    config["merge"]["dedup_policy"] = "label"

    vault = KnowledgeVault.from_config(config, llm_client=MagicMock())

    assert len(vault.store) == 8
    assert vault.analyzer is not None
    assert vault.quiz_generator.cache is not None
    # Label dedup is active
    result = vault.merge([CandidateConcept(label="transformer")], "Architecture")
    assert result.nodes == []


def test_from_seed(tmp_path):
    """Test starting from the seed graph, built in or from a file."""
    vault = KnowledgeVault.from_seed()
    assert vault.store.first_node().label == "LLM (Large Language Model)"
    assert len(vault.persistence.fetch_nodes("local")) == 8

    seed = tmp_path / "seed.yaml"
    seed.write_text("nodes:\n  - {id: a, label: Algebra, category: Math}\n", encoding="utf-8")
    config = copy.deepcopy(DEFAULT_CONFIG)
    config["seed_file"] = str(seed)
    vault = KnowledgeVault.from_seed(config)

    assert [n.label for n in vault.store.nodes] == ["Algebra"]
    assert vault.tree[1].children[0].name == "Math"


def test_failed_save_leaves_graph_unchanged(vault):
    """Test that a persistence failure during a merge does not touch the graph."""
    vault.analyze("text")
    tree_before = vault.tree

    with patch.object(vault.persistence, "save_graph_data", side_effect=OSError("disk full")):
        with pytest.raises(OSError):
            vault.save_pending("Core")

    assert [n.label for n in vault.store.nodes] == ["LLM", "Transformer"]
    assert len(vault.store.links) == 1
    assert vault.tree == tree_before
    assert vault.pending_saved is False

    # Retrying once persistence works adds each concept once
    vault.save_pending("Core")
    assert [n.label for n in vault.store.nodes] == ["LLM", "Transformer", "X", "Y"]
    assert [n.label for n in vault.persistence.fetch_nodes("local")] == ["LLM", "Transformer", "X", "Y"]


def test_assessment_of_node_missing_from_persistence(vault):
    """Test that the status is kept when persistence does not know the node."""
    vault.persistence.delete_node("local", "c1")
    token = vault.begin_assessment("c1")

    with pytest.raises(NotFoundError):
        vault.complete_assessment(token, AssessmentOutcome(score=90, status="known"))

    assert vault.store.get_node("c1").status == "fuzzy"
    assert vault.last_assessments == {}


def test_failed_result_save_restores_status(vault):
    """Test that a failing assessment record write rolls the status back."""
    token = vault.begin_assessment("c1")
    with patch.object(vault.persistence, "save_assessment_result", side_effect=OSError("disk full")):
        with pytest.raises(OSError):
            vault.complete_assessment(token, AssessmentOutcome(score=90, status="known"))

    assert vault.store.get_node("c1").status == "fuzzy"
