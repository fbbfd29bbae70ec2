import pytest
from unittest.mock import MagicMock
from conceptvault.analysis import ConceptAnalyzer
from conceptvault.exceptions import ExternalServiceError


@pytest.fixture
def mock_llm_client():
    """Mock LLM client for testing."""
    client = MagicMock()
    client.generate.return_value = """```yaml
concepts:
  - label: "Attention"
    status: "fuzzy"
    description: "Weights the relevant parts of the input"
  - label: "Positional Encoding"
    status: "new"
    description: "Adds order information to tokens"
```"""
    return client


def test_analyze_returns_candidates(mock_llm_client):
    """Test parsing a well-formed reply."""
    concepts = ConceptAnalyzer(mock_llm_client).analyze("How does attention work in transformers?")

    assert [c.label for c in concepts] == ["Attention", "Positional Encoding"]
    assert concepts[0].status == "fuzzy"
    assert concepts[1].description == "Adds order information to tokens"

    # The learner's text is part of the prompt
    prompt = mock_llm_client.generate.call_args[0][0]
    assert "How does attention work" in prompt


def test_unknown_status_becomes_new(mock_llm_client):
    """Test that unexpected statuses are normalised."""
    mock_llm_client.generate.return_value = """
concepts:
  - label: "Softmax"
    status: "mastered"
  - status: "known"
"""
    concepts = ConceptAnalyzer(mock_llm_client).analyze("text")

    # The item without a label is dropped
    assert len(concepts) == 1
    assert concepts[0].status == "new"


def test_reply_without_concepts(mock_llm_client):
    """Test replies missing the concepts list."""
    mock_llm_client.generate.return_value = "summary: nothing here"
    with pytest.raises(ExternalServiceError):
        ConceptAnalyzer(mock_llm_client).analyze("text")


def test_client_failure_is_wrapped(mock_llm_client):
    """Test that unexpected errors surface as service errors."""
    mock_llm_client.generate.side_effect = RuntimeError("connection reset")
    with pytest.raises(ExternalServiceError) as exc_info:
        ConceptAnalyzer(mock_llm_client).analyze("text")
    assert "connection reset" in str(exc_info.value)
