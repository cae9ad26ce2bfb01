import asyncio
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from atscan.models.schemas import Category, ESCOEntry
from atscan.models.settings import ValidationSettings
from atscan.services.cache import TTLCache
from atscan.services.esco_client import (
    ESCOClient, build_suggestions, match_confidence, parse_entry, score_candidates, skill_category,
)
from atscan.utils.exceptions import ValidationServiceError

KNOWLEDGE = "http://data.europa.eu/esco/skill-type/knowledge"
ATTITUDE = "http://data.europa.eu/esco/skill-type/attitude"

SKILLS = {
    "python": [{
        "title": "Python",
        "alternativeLabels": ["python programming", "Python 3"],
        "skillType": KNOWLEDGE,
        "reuseLevel": "http://data.europa.eu/esco/skill-reuse-level/cross-sector",
    }],
    "teamwork": [{
        "title": "work in teams",
        "alternativeLabels": ["teamwork"],
        "skillType": ATTITUDE,
    }],
}
OCCUPATIONS = {
    "data analyst": [{"title": "data analyst", "alternativeLabels": ["data analysis specialist"]}],
}


def esco_payload(results):
    return {"total": len(results), "_embedded": {"results": results}}


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class FakeESCO:
    """Stand-in for the ESCO search endpoint that records every request"""

    def __init__(self, skills=None, occupations=None, failing=(), slow=()):
        self.skills = SKILLS if skills is None else skills
        self.occupations = OCCUPATIONS if occupations is None else occupations
        self.failing = set(failing)
        self.slow = set(slow)
        self.requests = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        text = request.url.params["text"]
        entry_type = request.url.params["type"]
        self.requests.append((text, entry_type))
        if text in self.slow:
            await asyncio.sleep(1)
        if text in self.failing:
            return httpx.Response(500, json={"error": "boom"})
        source = self.skills if entry_type == "skill" else self.occupations
        return httpx.Response(200, json=esco_payload(source.get(text, [])))


class InFlightRecorder:
    """Answers every search empty after a short pause and tracks the most requests open at once"""

    def __init__(self):
        self.in_flight = 0
        self.peak = 0

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            await asyncio.sleep(0.01)
            return httpx.Response(200, json=esco_payload([]))
        finally:
            self.in_flight -= 1


def make_client(handler, clock=None, **settings):
    clock = clock or FakeClock()
    settings.setdefault("batch_group_delay", 0)
    return ESCOClient(
        ValidationSettings(**settings),
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        search_cache=TTLCache("search", 86400, clock=clock),
        validation_cache=TTLCache("validation", 3600, clock=clock),
    )


@pytest.fixture
def esco():
    return FakeESCO()


@pytest.fixture
def clock():
    return FakeClock()


class TestMatchConfidence:
    """Confidence tiers of a single candidate"""

    @pytest.mark.parametrize("term,title,labels,expected", [
        ("Python", "python", [], 1.0),
        ("py", "Python", ["py"], 0.95),
        ("java", "java ee", [], 0.8),
        ("advanced java", "java", [], 0.75),
        ("scrum", "agile project management", ["scrum methodology"], 0.7),
        ("sql databases", "manage data", ["sql"], 0.65),
        ("gardening", "python", [], 0.0),
    ])
    def test_tiers(self, term, title, labels, expected):
        entry = ESCOEntry(title=title, alternative_labels=labels)
        assert match_confidence(term, entry) == pytest.approx(expected)

    def test_close_spelling_is_scaled(self):
        """Similarity above 0.8 is scaled by 0.6"""
        entry = ESCOEntry(title="python")
        assert match_confidence("pythom", entry) == pytest.approx(0.5)

    def test_blank_term(self):
        assert match_confidence("  ", ESCOEntry(title="python")) == 0.0


class TestCandidateScoring:
    def test_skill_wins_ties_with_occupation(self):
        skills = [ESCOEntry(title="data analyst", entry_type="skill", skill_type="knowledge")]
        occupations = [ESCOEntry(title="data analyst", entry_type="occupation")]
        record = score_candidates("data analyst", 0.7, skills, occupations)
        assert record.matched_category == Category.HARD_SKILLS
        assert record.confidence == 1.0

    def test_occupation_wins_when_strictly_better(self):
        skills = [ESCOEntry(title="analyse data", entry_type="skill")]
        occupations = [ESCOEntry(title="data analyst", entry_type="occupation")]
        record = score_candidates("data analyst", 0.7, skills, occupations)
        assert record.matched_category == Category.JOB_TITLES
        assert record.canonical_title == "data analyst"

    def test_threshold_is_exclusive(self):
        skills = [ESCOEntry(title="agile project management", alternative_labels=["scrum methodology"])]
        record = score_candidates("scrum", 0.7, skills, [])
        assert record.confidence == pytest.approx(0.7)
        assert not record.is_validated

    def test_no_candidates(self):
        record = score_candidates("banana", 0.7, [], [])
        assert not record.is_validated
        assert record.confidence == 0.0
        assert record.canonical_title is None
        assert record.suggestions == ()

    @pytest.mark.parametrize("entry,expected", [
        (ESCOEntry(title="teamwork", skill_type="attitude"), Category.SOFT_SKILLS),
        (ESCOEntry(title="think critically", reuse_level="transversal"), Category.SOFT_SKILLS),
        (ESCOEntry(title="use spreadsheets software", skill_type="skill"), Category.TOOLS),
        (ESCOEntry(title="ict tools", skill_type="knowledge"), Category.HARD_SKILLS),
        (ESCOEntry(title="software developer", entry_type="occupation"), Category.JOB_TITLES),
    ])
    def test_skill_category(self, entry, expected):
        assert skill_category(entry) == expected

    def test_suggestions_exclude_term_and_duplicates(self):
        skills = [ESCOEntry(title="Python", alternative_labels=["python", "Python programming", "PYTHON PROGRAMMING"])]
        occupations = [ESCOEntry(title="python developer", entry_type="occupation"),
                       ESCOEntry(title="data scientist", entry_type="occupation")]
        assert build_suggestions("python", skills, occupations) == (
            "Python programming", "python developer", "data scientist",
        )


class TestParseEntry:
    def test_language_maps_and_links(self):
        item = {
            "uri": "http://data.europa.eu/esco/skill/123",
            "preferredLabel": {"en": "Kubernetes"},
            "alternativeLabel": {"en": ["k8s"]},
            "_links": {"hasSkillType": [{"href": KNOWLEDGE}]},
        }
        entry = parse_entry(item, "skill", "en")
        assert entry.title == "Kubernetes"
        assert entry.alternative_labels == ["k8s"]
        assert entry.skill_type == "knowledge"

    def test_missing_title(self):
        assert parse_entry({"uri": "x"}, "skill", "en") is None
        assert parse_entry("not a dict", "skill", "en") is None


class TestESCOClient:
    """Lookups, caching and failure handling against a mocked endpoint"""

    @pytest.mark.asyncio
    async def test_exact_skill_match(self, esco):
        client = make_client(esco)
        record = await client.validate_term("Python")

        assert record.is_validated
        assert record.confidence == 1.0
        assert record.matched_category == Category.HARD_SKILLS
        assert record.canonical_title == "Python"
        assert record.suggestions == ("python programming", "Python 3")
        assert sorted(esco.requests) == [("python", "occupation"), ("python", "skill")]

    @pytest.mark.asyncio
    async def test_attitude_is_soft_skill(self, esco):
        client = make_client(esco)
        record = await client.validate_term("teamwork")
        assert record.confidence == 0.95
        assert record.matched_category == Category.SOFT_SKILLS

    @pytest.mark.asyncio
    async def test_occupation_match(self, esco):
        client = make_client(esco)
        record = await client.validate_term("Data Analyst")
        assert record.matched_category == Category.JOB_TITLES
        assert record.is_validated

    @pytest.mark.asyncio
    async def test_repeated_validation_uses_cache(self, esco):
        """The second lookup within the TTL issues no requests"""
        client = make_client(esco)
        first = await client.validate_term("python")
        second = await client.validate_term("python")

        assert first == second
        assert len(esco.requests) == 2
        assert client.cache_stats()["validation"]["hits"] == 1

    @pytest.mark.asyncio
    async def test_expired_entries_are_refreshed(self, esco, clock):
        client = make_client(esco, clock=clock)
        await client.validate_term("python")

        # validation record expired, search results still fresh
        clock.now += 3600
        await client.validate_term("python")
        assert len(esco.requests) == 2

        clock.now += 86400
        await client.validate_term("python")
        assert len(esco.requests) == 4

    @pytest.mark.asyncio
    async def test_threshold_is_part_of_the_cache_key(self, esco):
        client = make_client(esco)
        await client.validate_term("teamwork", threshold=0.7)
        record = await client.validate_term("teamwork", threshold=0.99)
        assert not record.is_validated

    @pytest.mark.asyncio
    async def test_failed_term_is_unvalidated_and_not_cached(self):
        esco = FakeESCO(failing={"broken"})
        client = make_client(esco)
        records = await client.validate_terms(["python", "broken"])

        assert [r.term for r in records] == ["python", "broken"]
        assert records[0].is_validated
        assert not records[1].is_validated
        assert len(client.validation_cache) == 1

    @pytest.mark.asyncio
    async def test_malformed_payload(self):
        def handler(request):
            if request.url.params["type"] == "skill":
                return httpx.Response(200, text="<html>not json</html>")
            return httpx.Response(200, json={"_embedded": {}})

        client = make_client(handler)
        record = await client.validate_term("python")
        assert not record.is_validated
        assert len(client.search_cache) == 0

    @pytest.mark.asyncio
    async def test_unreachable_reference_raises(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)
        with pytest.raises(ValidationServiceError):
            await client.validate_terms(["python", "java"])

    @pytest.mark.asyncio
    async def test_empty_batch(self, esco):
        client = make_client(esco)
        assert await client.validate_terms([]) == []
        assert esco.requests == []

    @pytest.mark.asyncio
    async def test_batches_preserve_order_and_pause_between_groups(self, esco):
        """Five terms in batches of two, two batches at a time: three batches, one pause"""
        client = make_client(esco, batch_size=2, max_concurrent_batches=2, batch_group_delay=0.01)
        terms = ["teamwork", "python", "banana", "data analyst", "rust"]

        with patch("atscan.services.esco_client.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            records = await client.validate_terms(terms)

        assert [r.term for r in records] == terms
        mock_sleep.assert_awaited_once_with(0.01)

    @pytest.mark.asyncio
    async def test_slow_term_times_out_alone(self):
        esco = FakeESCO(slow={"slow"})
        client = make_client(esco, term_timeout=0.05)
        records = await client.validate_terms(["python", "slow"])

        assert records[0].is_validated
        assert records[1].term == "slow"
        assert not records[1].is_validated

    @pytest.mark.asyncio
    async def test_injected_http_client_is_not_closed(self, esco):
        http = httpx.AsyncClient(transport=httpx.MockTransport(esco))
        async with ESCOClient(http_client=http):
            pass
        assert not http.is_closed
        await http.aclose()


class TestConcurrency:
    """Requests overlap but never exceed the batch bound"""

    @pytest.mark.asyncio
    async def test_skill_and_occupation_searches_overlap(self):
        recorder = InFlightRecorder()
        client = make_client(recorder)
        await client.validate_term("python")
        assert recorder.peak == 2

    @pytest.mark.asyncio
    async def test_in_flight_requests_are_bounded_by_batch_settings(self):
        """Two batches of two terms, two searches each: at most eight requests open"""
        recorder = InFlightRecorder()
        client = make_client(recorder, batch_size=2, max_concurrent_batches=2)
        terms = ["python", "java", "rust", "go", "scala", "kotlin"]

        records = await client.validate_terms(terms)

        assert [r.term for r in records] == terms
        assert 1 < recorder.peak <= 8
