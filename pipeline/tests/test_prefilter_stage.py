"""Tests for the relevance pre-filter stage."""

import json

from mundus.errors import OracleTransportError
from mundus.schemas.digest import CandidateDocument
from mundus.services.pipeline_settings import PreFilterSettings

from digest_pipeline.prompts.prefilter import build_prefilter_prompt, build_topic_keyword_hints
from digest_pipeline.stages import prefilter_stage
from digest_pipeline.stages.prefilter_stage import (
    PREFILTER_SLOT,
    apply_selection,
    coerce_score,
    run_prefilter_stage,
    should_prefilter,
)
from oracle_fakes import FakeOracle, make_documents

TRUE_POSITIVES = {
    "tp1": "Vattenfall commissions 400 MW offshore wind farm",
    "tp2": "Battery storage auction doubles grid flexibility",
    "tp3": "Government sets new solar subsidy for households",
}
FALSE_POSITIVES = {
    "fp1": "Megasol Bank posts record quarter",
    "fp2": "Solna retail centre changes owner",
    "fp3": "Kraftigt vinstlyft for insurer",
    "fp4": "Vindication for striker after transfer saga",
    "fp5": "Consol Group appoints new CFO",
}


def _scenario_pool():
    docs = make_documents(112, prefix="filler")
    extra = [
        CandidateDocument(id=doc_id, title=title, body=title, source_name="Wire")
        for doc_id, title in {**FALSE_POSITIVES, **TRUE_POSITIVES}.items()
    ]
    return docs[:50] + extra + docs[50:]


def _scored_response():
    selections = [
        {"article_id": "tp2", "relevance_score": 9, "relevance_reason": "Grid storage"},
        {"article_id": "tp1", "relevance_score": 9, "relevance_reason": "Offshore wind"},
        {"article_id": "tp3", "relevance_score": 8, "relevance_reason": "Solar policy"},
    ]
    selections += [
        {"article_id": doc_id, "relevance_score": 2, "relevance_reason": "Name match only"}
        for doc_id in FALSE_POSITIVES
    ]
    selections += [
        {"article_id": "tp1", "relevance_score": 3, "relevance_reason": "repeat"},
        {"article_id": "ghost", "relevance_score": 10, "relevance_reason": "unknown id"},
    ]
    return json.dumps({"filtered_articles": selections, "excluded_count": 112})


def test_should_prefilter(energy_profile, empty_profile):
    assert should_prefilter(101, energy_profile, 100) is True
    assert should_prefilter(100, energy_profile, 100) is False
    assert should_prefilter(500, empty_profile, 100) is False


def test_coerce_score():
    assert coerce_score("7") == 7
    assert coerce_score(12) == 10
    assert coerce_score(-3) == 0
    assert coerce_score(6.6) == 7
    assert coerce_score(None) is None
    assert coerce_score(True) is None
    assert coerce_score(float("inf")) is None
    assert coerce_score("nan") is None


def test_keyword_hints_expand_known_topics():
    hints = build_topic_keyword_hints(["Energy", "Shipping"], ["hydrogen"])
    assert "solar, wind, batteries" in hints
    assert "Shipping" in hints
    assert hints.endswith("hydrogen")


def test_prompt_carries_false_positive_guidance(energy_profile):
    prompt = build_prefilter_prompt(make_documents(3), energy_profile, "Nordic Power AB", target_count=50)
    assert "Megasol" in prompt
    assert "Select the top 50 articles" in prompt
    assert "[3] ID: doc3" in prompt


async def test_scenario_energy_filter_excludes_lexical_matches(energy_profile):
    pool = _scenario_pool()
    oracle = FakeOracle(text_responses=[f"```json\n{_scored_response()}\n```"])

    result = await run_prefilter_stage(oracle, pool, energy_profile, "Nordic Power AB")

    ids = [doc.id for doc in result.documents]
    assert result.applied is True
    assert result.degraded is False
    assert result.excluded_count == 112
    assert set(ids) == set(TRUE_POSITIVES)
    assert not set(ids) & set(FALSE_POSITIVES)
    assert all(doc.pre_filter_score >= 5 for doc in result.documents)
    # Equal scores keep pool order: tp1 precedes tp2 in the pool.
    assert ids == ["tp1", "tp2", "tp3"]
    assert result.documents[0].pre_filter_reason == "Offshore wind"
    assert len(oracle.calls_for(PREFILTER_SLOT)) == 1
    # Originals are untouched.
    assert all(doc.pre_filter_score is None for doc in pool)


async def test_small_pool_passes_through_without_oracle(energy_profile):
    oracle = FakeOracle()
    docs = make_documents(40)
    result = await run_prefilter_stage(oracle, docs, energy_profile, "Client")
    assert result.applied is False
    assert result.documents == docs
    assert oracle.calls == []


async def test_no_topics_truncates_to_target(empty_profile):
    oracle = FakeOracle()
    docs = make_documents(150)
    result = await run_prefilter_stage(
        oracle, docs, empty_profile, "Client", PreFilterSettings(target_count=60)
    )
    assert [d.id for d in result.documents] == [d.id for d in docs[:60]]
    assert oracle.calls == []


async def test_oracle_failure_degrades_to_truncation(energy_profile, caplog):
    oracle = FakeOracle(text_responses=[OracleTransportError("timeout")])
    docs = make_documents(130)
    with caplog.at_level("WARNING"):
        result = await run_prefilter_stage(oracle, docs, energy_profile, "Client")
    assert result.degraded is True
    assert result.applied is False
    assert "timeout" in result.reason
    assert [d.id for d in result.documents] == [d.id for d in docs[:100]]
    assert "Pre-filter failed" in caplog.text


async def test_malformed_output_is_repaired_once(energy_profile):
    docs = make_documents(130)
    repaired = json.dumps({"filtered_articles": [{"article_id": "doc7", "relevance_score": 8}]})
    oracle = FakeOracle(text_responses=["I think these are relevant: doc7", repaired])
    result = await run_prefilter_stage(oracle, docs, energy_profile, "Client")
    assert [d.id for d in result.documents] == ["doc7"]
    assert len(oracle.calls) == 2


async def test_malformed_output_after_repair_degrades(energy_profile):
    docs = make_documents(130)
    oracle = FakeOracle(text_responses=["nope", '{"filtered_articles": "all"}'])
    result = await run_prefilter_stage(oracle, docs, energy_profile, "Client")
    assert result.degraded is True
    assert len(result.documents) == 100


async def test_non_finite_scores_are_dropped(energy_profile):
    docs = make_documents(120)
    response = (
        '{"filtered_articles": [{"article_id": "doc3", "relevance_score": 1e999},'
        ' {"article_id": "doc4", "relevance_score": 8}], "excluded_count": 1e999}'
    )
    oracle = FakeOracle(text_responses=[response])
    result = await run_prefilter_stage(oracle, docs, energy_profile, "Client")
    assert result.applied is True
    assert [d.id for d in result.documents] == ["doc4"]
    assert result.excluded_count is None


async def test_selection_mapping_failure_degrades(energy_profile, monkeypatch):
    def broken(*args, **kwargs):
        raise OverflowError("cannot convert float infinity to integer")

    monkeypatch.setattr(prefilter_stage, "apply_selection", broken)
    docs = make_documents(120)
    oracle = FakeOracle(text_responses=['{"filtered_articles": []}'])
    result = await run_prefilter_stage(oracle, docs, energy_profile, "Client")
    assert result.degraded is True
    assert [d.id for d in result.documents] == [d.id for d in docs[:100]]


def test_apply_selection_caps_at_target():
    docs = make_documents(5)
    data = {"filtered_articles": [{"article_id": f"doc{i}", "relevance_score": 5 + i} for i in range(1, 6)]}
    selected = apply_selection(docs, data, target_count=2, min_score=5)
    assert [d.id for d in selected] == ["doc5", "doc4"]
