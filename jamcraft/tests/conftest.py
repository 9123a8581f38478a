import os
import sys
import pytest


def _ensure_project_root_on_sys_path() -> None:
    here = os.path.dirname(__file__)
    project_root = os.path.abspath(os.path.join(here, "..", ".."))
    if project_root not in sys.path:
        sys.path.insert(0, project_root)


_ensure_project_root_on_sys_path()


@pytest.fixture(autouse=True)
def _clear_jamcraft_env():
    """Ensure Slack/Spotify settings do not leak across tests.
    A developer .env may set these variables; clear before each test and
    restore afterwards so tests explicitly setting them remain deterministic.
    """
    keys = [
        'SLACK_BOT_TOKEN', 'SLACK_SIGNING_SECRET', 'MUSIC_CHANNEL_NAME', 'MUSIC_CHANNEL_ID',
        'SPOTIFY_CLIENT_ID', 'SPOTIFY_CLIENT_SECRET', 'SPOTIFY_REFRESH_TOKEN', 'SPOTIFY_PLAYLIST_ID',
        'DRY_RUN', 'SCAN_EXISTING_ON_STARTUP', 'PORT', 'HOST', 'LOG_LEVEL', 'LOG_FILE',
    ]
    backup = {k: os.environ.get(k) for k in keys}
    for k in keys:
        os.environ.pop(k, None)
    try:
        yield
    finally:
        for k, v in backup.items():
            if v is None:
                os.environ.pop(k, None)
            else:
                os.environ[k] = v
