from models.recommender import CandidateItem, RecommendRequest
from services.text import build_context_string, build_item_text, utc_now_iso


def _clock():
    return "2024-10-02T18:30:00.000Z"


def test_context_string_defaults():
    req = RecommendRequest()
    assert build_context_string(req, clock=_clock) == (
        "user=guest; lat=unknown; lon=unknown; time=2024-10-02T18:30:00.000Z; "
        "festival=none; weather=normal"
    )


def test_context_string_full():
    req = RecommendRequest(
        user_id="u-42",
        lat=26.9124,
        lon=75.7873,
        now_iso="2024-11-01T10:00:00Z",
        context={"festival": "diwali", "weather": "rainy"},
    )
    assert build_context_string(req, clock=_clock) == (
        "user=u-42; lat=26.9124; lon=75.7873; time=2024-11-01T10:00:00Z; "
        "festival=diwali; weather=rainy"
    )


def test_context_empty_strings_fall_back():
    req = RecommendRequest(user_id="", context={"festival": "", "weather": ""})
    text = build_context_string(req, clock=_clock)
    assert text.startswith("user=guest;")
    assert "festival=none" in text and "weather=normal" in text


def test_context_extra_signals_sorted():
    a = RecommendRequest(context={"weather": "hot", "season": "summer", "event": "fair"})
    b = RecommendRequest(context={"event": "fair", "season": "summer", "weather": "hot"})
    text = build_context_string(a, clock=_clock)
    assert text.endswith("festival=none; weather=hot; event=fair; season=summer")
    assert text == build_context_string(b, clock=_clock)


def test_context_is_deterministic():
    payload = {"user_id": "u1", "lat": 12.0, "lon": 77.5, "now_iso": "2024-01-01T00:00:00Z"}
    assert build_context_string(RecommendRequest(**payload)) == build_context_string(
        RecommendRequest(**payload)
    )


def test_default_clock_format():
    now = utc_now_iso()
    assert now.endswith("Z")
    assert "T" in now and "." in now


def test_item_text_all_fields():
    item = CandidateItem(
        id="p1",
        name="Blue Pottery Vase",
        category="decor",
        material="ceramic",
        description="Hand painted",
        tags=["jaipur", "gift"],
    )
    assert build_item_text(item) == "Blue Pottery Vase | decor | ceramic | Hand painted | jaipur gift"


def test_item_text_skips_missing_fields():
    item = CandidateItem(id="p2", name="Shawl", material="", tags=[])
    assert build_item_text(item) == "Shawl"


def test_item_text_empty_item():
    assert build_item_text(CandidateItem(id="p3")) == ""


def test_item_text_identical_fields_identical_text():
    a = CandidateItem(id="a", name="Rug", category="home", tags=["wool"])
    b = CandidateItem(id="b", name="Rug", category="home", tags=["wool"])
    assert build_item_text(a) == build_item_text(b)


def test_item_tags_joined_with_single_spaces_verbatim():
    item = CandidateItem(id="p4", tags=["a", "", "b"])
    assert build_item_text(item) == "a  b"
