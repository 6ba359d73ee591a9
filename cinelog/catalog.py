"""Read-only movie/TV metadata lookup against TMDB."""
import logging

import httpx

from . import config
from .errors import NotFoundError, TransientNetworkError


def to_snapshot(details: dict, media_type: str = "movie") -> dict:
    """Flatten a TMDB details payload into the snapshot stored on logs."""
    title = details.get('title', details.get('name', ''))
    release_date = details.get('release_date', details.get('first_air_date', '')) or ''
    year = int(release_date[:4]) if release_date[:4].isdigit() else None

    credits = details.get('credits', {})
    directors = [c['name'] for c in credits.get('crew', []) if c.get('job') == 'Director']
    if not directors:
        # TV has creators instead of a director
        directors = [c['name'] for c in details.get('created_by', [])]

    if media_type == 'movie':
        runtime = details.get('runtime') or 0
    else:
        episode_runtimes = details.get('episode_run_time') or []
        runtime = episode_runtimes[0] if episode_runtimes else 0

    poster_path = details.get('poster_path')
    return {
        "id": details.get('id'),
        "title": title,
        "year": year,
        "posterUrl": f"{config.TMDB_IMAGE_URL}{poster_path}" if poster_path else None,
        "runtime": runtime,
        "genres": [g['name'] for g in details.get('genres', [])],
        "director": directors[0] if directors else None,
        "countries": [c['iso_3166_1'] for c in details.get('production_countries', [])],
        "cast": [c['name'] for c in credits.get('cast', [])[:5]],
        "mediaType": media_type,
    }


async def get_details(tmdb_id: int, media_type: str = "movie", transport: httpx.AsyncBaseTransport = None) -> dict:
    async with httpx.AsyncClient(base_url=config.TMDB_BASE_URL, transport=transport, timeout=10.0) as client:
        params = {"api_key": config.TMDB_API_KEY, "append_to_response": "credits"}
        try:
            response = await client.get(f"/{media_type}/{tmdb_id}", params=params)
        except httpx.HTTPError as e:
            logging.error(f"Catalog lookup failed for {media_type}/{tmdb_id}: {e}")
            raise TransientNetworkError(str(e)) from e

    if response.status_code == 404:
        raise NotFoundError(f"{media_type} {tmdb_id} not found in catalog")
    if response.status_code != 200:
        raise TransientNetworkError(f"Catalog returned {response.status_code}")
    return to_snapshot(response.json(), media_type)
