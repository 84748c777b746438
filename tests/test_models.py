from datetime import datetime

import pytest
from pydantic import ValidationError

from app.models import (
    ListUpdate,
    PostCreate,
    ResolvedRecommendation,
    SuggestionStub,
    TitleData,
    UnresolvedRecommendation,
)


def test_suggestion_stub_normalises_model_output():
    stub = SuggestionStub.model_validate(
        {
            "name": "  Arrival ",
            "year": "2016",
            "genre": ["Sci-Fi", "Drama"],
            "reason": None,
            "type": "TV Series",
        }
    )

    assert stub.title == "Arrival"
    assert stub.year == 2016
    assert stub.genre == "Sci-Fi, Drama"
    assert stub.reason == ""
    assert stub.type == "tv"


def test_suggestion_stub_requires_a_title():
    with pytest.raises(ValidationError):
        SuggestionStub.model_validate({"title": "   ", "reason": "blank"})


def test_badges_skip_missing_genre():
    assert SuggestionStub(title="Heat", genre="Crime").badges() == ["Crime", "movie"]
    assert SuggestionStub(title="Heat").badges() == ["movie"]


def test_title_data_maps_tv_to_series_and_rounds_rating():
    title = TitleData(name="Severance", type="tv", rating=4.4567)

    assert title.type == "series"
    assert title.rating == 4.5


def test_post_create_validates_rating_range():
    with pytest.raises(ValidationError):
        PostCreate.model_validate({"titleId": "t1", "userRating": 6})

    post = PostCreate.model_validate({"titleId": "t1", "moodTags": ["cozy"]})
    assert post.title_id == "t1"
    assert post.mood_tags == ["cozy"]


def test_enriched_recommendations_serialise_in_camel_case():
    resolved = ResolvedRecommendation(
        id="t1",
        name="Dune",
        poster_url="https://image.example/dune.jpg",
        created_at=datetime(2024, 1, 1),
        reason="Spice",
        badges=["Sci-Fi", "movie"],
    )
    unresolved = UnresolvedRecommendation(name="Nonexistent Film XYZ", reason="test")

    resolved_payload = resolved.model_dump(mode="json", by_alias=True)
    assert resolved_payload["posterUrl"] == "https://image.example/dune.jpg"
    assert resolved_payload["resolved"] is True

    unresolved_payload = unresolved.model_dump(mode="json", by_alias=True)
    assert unresolved_payload == {
        "name": "Nonexistent Film XYZ",
        "year": None,
        "type": "movie",
        "genres": [],
        "reason": "test",
        "badges": [],
        "resolved": False,
    }


def test_title_rating_stays_on_five_point_scale():
    with pytest.raises(ValidationError):
        TitleData(name="Heat", rating=8.3)

    assert TitleData(name="Heat", rating=5).rating == 5


def test_list_update_rejects_explicit_nulls():
    for payload in ({"name": None}, {"isPublic": None}):
        with pytest.raises(ValidationError):
            ListUpdate.model_validate(payload)

    update = ListUpdate.model_validate({"description": None})
    assert update.model_fields_set == {"description"}
    assert update.model_dump(exclude_unset=True) == {"description": None}
