"""End-to-end pipeline tests (mocked oracle HTTP and datastore session)."""

import json
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

import digest_pipeline.orchestrator as orchestrator
from digest_pipeline.__main__ import main
from mundus.errors import OracleSchemaError, ValidationError
from mundus.schemas.digest import DigestEnvelope
from mundus.services.llm_client import LLMClient
from oracle_fakes import keep_everything


class SettingRow:
    def __init__(self, key, value):
        self.key = key
        self.value = value
        self.recipient_id = None


@pytest.fixture
def oracle_log():
    return []


@pytest.fixture
def patched_pipeline(monkeypatch, recipient_row, oracle_log):
    """Run the real orchestrator against a scripted HTTP oracle."""
    setting_rows = [SettingRow("digest.batch.batch_size", 10)]
    state = {"structured": keep_everything, "settings": setting_rows}

    mock_result = MagicMock()
    mock_result.scalars.return_value.first.return_value = recipient_row
    mock_result.scalars.return_value.all.return_value = setting_rows
    session = AsyncMock()
    session.execute.return_value = mock_result

    @asynccontextmanager
    async def fake_get_session():
        yield session

    def handler(request):
        body = json.loads(request.content)
        prompt = body["messages"][-1]["content"]
        oracle_log.append(body)
        if "response_format" in body:
            content = json.dumps(state["structured"]("extraction", prompt))
        else:
            content = "{}"
        return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})

    class MockedClient(LLMClient):
        def __init__(self, timeout=120.0, transport=None):
            super().__init__(timeout=timeout, transport=httpx.MockTransport(handler))

    monkeypatch.setattr(orchestrator, "get_session", fake_get_session)
    monkeypatch.setattr(orchestrator, "LLMClient", MockedClient)
    return state


async def test_full_run_over_http(patched_pipeline, sample_articles, recipient_id, oracle_log):
    envelope = await orchestrator.run_digest_with_retry(
        {"recipient_id": recipient_id, "articles": sample_articles, "country": "SE"}
    )

    assert isinstance(envelope, DigestEnvelope)
    assert envelope.success is True
    assert envelope.metadata.recipient_name == "Nordic Power AB"
    # batch_size override from digest_settings: 30 articles -> 3 batches of 10
    assert envelope.report.metadata.batches_processed == 3
    assert envelope.report.metadata.articles_included == 30
    assert len(oracle_log) == 3
    assert all(body["model"] == "test/model" for body in oracle_log)
    assert all(body["response_format"]["json_schema"]["strict"] is True for body in oracle_log)
    assert envelope.report.email.subject.startswith("Nordic Power AB Digest: ")


async def test_schema_failure_over_http(patched_pipeline, sample_articles, recipient_id, oracle_log):
    patched_pipeline["structured"] = lambda slot, prompt: {"filtered_articles": None}

    async def no_sleep(_delay):
        return None

    with pytest.raises(OracleSchemaError) as excinfo:
        await orchestrator.run_digest_with_retry(
            {"recipient_id": recipient_id, "articles": sample_articles},
            max_retries=1,
            sleep=no_sleep,
        )
    assert excinfo.value.attempts == 2
    assert len(oracle_log) == 2


async def test_invalid_settings_row_fails_the_run(patched_pipeline, sample_articles, recipient_id, oracle_log):
    patched_pipeline["settings"][0].value = 0

    with pytest.raises(ValidationError) as excinfo:
        await orchestrator.run_digest_with_retry(
            {"recipient_id": recipient_id, "articles": sample_articles}, max_retries=2
        )
    assert excinfo.value.attempts == 1
    assert any("batch_size" in line for line in excinfo.value.details["errors"])
    assert oracle_log == []


def test_cli_writes_envelope(patched_pipeline, sample_articles, recipient_id, tmp_path, monkeypatch):
    async def noop():
        return None

    monkeypatch.setattr("digest_pipeline.__main__.close_engine", noop)
    request_file = tmp_path / "request.json"
    request_file.write_text(json.dumps({"recipient_id": recipient_id, "articles": sample_articles[:5]}))
    output_file = tmp_path / "digest.json"

    exit_code = main([str(request_file), "--output", str(output_file), "--log-level", "warning"])

    assert exit_code == 0
    written = json.loads(output_file.read_text())
    assert written["success"] is True
    assert written["report"]["metadata"]["articles_included"] == 5


def test_cli_reports_failure(patched_pipeline, sample_articles, recipient_id, tmp_path, monkeypatch, capsys):
    async def noop():
        return None

    monkeypatch.setattr("digest_pipeline.__main__.close_engine", noop)
    patched_pipeline["structured"] = lambda slot, prompt: {"filtered_articles": None}
    request_file = tmp_path / "request.json"
    request_file.write_text(json.dumps({"recipient_id": recipient_id, "articles": sample_articles[:5]}))

    exit_code = main([str(request_file), "--max-retries", "0"])

    assert exit_code == 1
    error = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
    assert error["error"]["kind"] == "oracle_schema_error"
    assert error["error"]["attempts"] == 1
