"""
Unit tests for the Complaint Classification Agent.
Gemini is mocked; no network calls are made.
"""

import pytest
import json
import os
import tempfile
from unittest.mock import MagicMock, Mock, call, patch
from crypto_complaints.agents.classification import ComplaintClassificationAgent, build_prompt
from crypto_complaints.models.complaint import ComplaintRecord
from crypto_complaints.registry.classification_cache import ClassificationCache

LABELS = ["locked_account", "verification", "withdrawal", "customer_service", "fraud", "fees", "other"]


def make_record(complaint_id, narrative=None):
    narrative = narrative or f"Complaint {complaint_id}: the exchange would not let me withdraw my funds for weeks."
    return ComplaintRecord(id=str(complaint_id), narrative=narrative)


def model_response(mapping):
    response = MagicMock()
    response.text = json.dumps(mapping)
    return response


@pytest.fixture
def mock_genai():
    """Mock Gemini API."""
    with patch('crypto_complaints.agents.classification.genai') as mock_genai:
        mock_model = MagicMock()
        mock_genai.GenerativeModel.return_value = mock_model
        yield mock_genai, mock_model


@pytest.fixture
def agent(mock_genai):
    return ComplaintClassificationAgent(
        api_key="test_key",
        labels=LABELS,
        batch_size=5,
        batch_delay_seconds=4.0,
        retry_delay_seconds=5.0,
        sleep=Mock()
    )


def test_configures_model(mock_genai):
    genai, _ = mock_genai

    ComplaintClassificationAgent(api_key="test_key", labels=LABELS, model_name="gemini-test")

    genai.configure.assert_called_once_with(api_key="test_key")
    genai.GenerativeModel.assert_called_once_with(
        model_name="gemini-test",
        generation_config={"temperature": 0.0}
    )


def test_select_unclassified(agent):
    """Short narratives and already-cached ids are skipped."""
    with tempfile.TemporaryDirectory() as tmpdir:
        cache = ClassificationCache(os.path.join(tmpdir, "classifications.json"), LABELS)
        cache.update({"2": "fraud"})
        records = [make_record(1), make_record(2), ComplaintRecord(id="3", narrative="too short")]

        pending = agent.select_unclassified(records, cache)

        assert [r.id for r in pending] == ["1"]


def test_build_prompt_truncates_narratives():
    record = make_record(7, "a" * 2000)

    prompt = build_prompt([record], LABELS, max_chars=1500)

    assert "Complaint 1 (ID: 7):" in prompt
    assert "a" * 1500 in prompt
    assert "a" * 1501 not in prompt
    for label in LABELS:
        assert f"- {label}:" in prompt


def test_parse_response_tolerates_code_fences(agent):
    parsed = agent._parse_response('Here you go:\n```json\n{"1": "fraud", "2": "fees"}\n```')

    assert parsed == {"1": "fraud", "2": "fees"}


def test_parse_response_without_json_raises(agent):
    with pytest.raises(ValueError):
        agent._parse_response("I could not classify these complaints.")


def test_classify_batch_drops_invalid_labels(agent, mock_genai):
    _, model = mock_genai
    model.generate_content.return_value = model_response(
        {"1": "fraud", "2": "crypto_drama", "3": "withdrawal"}
    )

    result = agent.classify_batch([make_record(1), make_record(2), make_record(3)])

    assert result == {"1": "fraud", "3": "withdrawal"}


def test_classify_batch_retries_with_linear_backoff(agent, mock_genai):
    _, model = mock_genai
    bad_text = MagicMock()
    bad_text.text = "no json here"
    bad_json = MagicMock()
    bad_json.text = "{not: valid}"
    model.generate_content.side_effect = [bad_text, bad_json, model_response({"1": "fees"})]

    result = agent.classify_batch([make_record(1)])

    assert result == {"1": "fees"}
    assert model.generate_content.call_count == 3
    assert agent._sleep.call_args_list == [call(5.0), call(10.0)]


def test_classify_batch_gives_up_after_retries(agent, mock_genai):
    """A batch that fails every attempt yields no classifications."""
    _, model = mock_genai
    model.generate_content.side_effect = RuntimeError("quota exceeded")

    result = agent.classify_batch([make_record(1)])

    assert result == {}
    assert model.generate_content.call_count == 3


def test_run_classifies_in_batches_and_saves(agent, mock_genai):
    _, model = mock_genai
    records = [make_record(i) for i in range(12)]
    model.generate_content.side_effect = [
        model_response({str(i): "withdrawal" for i in range(0, 5)}),
        model_response({str(i): "fraud" for i in range(5, 10)}),
        model_response({"10": "fees", "11": "other"}),
    ]

    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, "classifications.json")
        cache = ClassificationCache(path, LABELS)

        classified = agent.run(records, cache)

        assert classified == 12
        assert model.generate_content.call_count == 3
        # Rate-limit delay between batches only
        assert agent._sleep.call_args_list == [call(4.0), call(4.0)]

        with open(path) as f:
            saved = json.load(f)
        assert len(saved) == 12
        assert saved["10"] == "fees"


def test_run_with_nothing_pending(agent, mock_genai):
    _, model = mock_genai

    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, "classifications.json")
        cache = ClassificationCache(path, LABELS)
        cache.update({"1": "fraud"})

        classified = agent.run([make_record(1)], cache)

        assert classified == 0
        model.generate_content.assert_not_called()
        assert not os.path.exists(path)


def test_rejects_invalid_batch_size(mock_genai):
    with pytest.raises(ValueError):
        ComplaintClassificationAgent(api_key="test_key", labels=LABELS, batch_size=0)


# Run tests if executed directly
if __name__ == "__main__":
    pytest.main([__file__, "-v"])
