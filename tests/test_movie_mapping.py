"""Translation of TMDB payloads into local movie records."""

from __future__ import annotations

from datetime import date

from app.db_models import MovieStatus
from app.services.movies import map_tmdb_to_create, map_tmdb_to_update, normalise_tmdb_status
from app.services.tmdb import TMDBMovieDetails

from test_tmdb_client import FIGHT_CLUB


def test_status_labels_are_normalised() -> None:
    assert normalise_tmdb_status("Released") is MovieStatus.RELEASED
    assert normalise_tmdb_status("Post Production") is MovieStatus.POST_PRODUCTION
    assert normalise_tmdb_status("In Production") is MovieStatus.IN_PRODUCTION
    assert normalise_tmdb_status("Canceled") is MovieStatus.CANCELED
    assert normalise_tmdb_status("Something else") is None
    assert normalise_tmdb_status(None) is None


def test_map_details_to_create_request() -> None:
    request = map_tmdb_to_create(TMDBMovieDetails.model_validate(FIGHT_CLUB))

    assert request.tmdb_id == 550
    assert request.title == "Fight Club"
    assert request.release_date == date(1999, 10, 15)
    assert request.vote_average == 8.4
    assert request.spoken_languages == ["English"]
    assert request.production_countries == ["United States of America"]
    assert request.status is MovieStatus.RELEASED
    assert request.genre_ids == [18]
    assert request.imdb_id == "tt0137523"


def test_missing_optional_fields_are_left_unset() -> None:
    details = TMDBMovieDetails.model_validate(
        {"id": 42, "title": "Sparse", "release_date": "", "poster_path": "", "overview": None}
    )

    request = map_tmdb_to_create(details)

    assert request.overview == ""
    assert request.release_date is None
    assert request.poster_path is None
    assert request.genre_ids is None
    assert "status" not in request.model_fields_set


def test_map_details_to_update_drops_tmdb_id_and_stamps_sync_time() -> None:
    update = map_tmdb_to_update(TMDBMovieDetails.model_validate(FIGHT_CLUB))
    values = update.model_dump(exclude_unset=True)

    assert "tmdb_id" not in values
    assert values["title"] == "Fight Club"
    assert values["genre_ids"] == [18]
    assert update.last_synced_at is not None
