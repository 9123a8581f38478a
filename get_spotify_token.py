#!/usr/bin/env python3
"""
Obtain a Spotify refresh token for SPOTIFY_REFRESH_TOKEN via OAuth
"""

import os
from dotenv import load_dotenv
import spotipy
from spotipy.cache_handler import MemoryCacheHandler
from spotipy.oauth2 import SpotifyOAuth, SpotifyOauthError

from jamcraft.infrastructure.providers.credentials import DEFAULT_REDIRECT_URI, SPOTIFY_SCOPES

# Load environment variables
load_dotenv()


def get_spotify_refresh_token():
    """Run the authorization-code flow once and return the refresh token"""

    client_id = os.getenv('SPOTIFY_CLIENT_ID')
    client_secret = os.getenv('SPOTIFY_CLIENT_SECRET')
    redirect_uri = os.getenv('SPOTIFY_REDIRECT_URI') or DEFAULT_REDIRECT_URI

    if not all([client_id, client_secret]):
        print("❌ SPOTIFY_CLIENT_ID and SPOTIFY_CLIENT_SECRET must be set in .env")
        return None

    print("🔐 Requesting Spotify authorization...")
    print(f"📱 A browser will open; make sure {redirect_uri} is registered for your app")
    print()

    auth_manager = SpotifyOAuth(
        client_id=client_id,
        client_secret=client_secret,
        redirect_uri=redirect_uri,
        scope=' '.join(SPOTIFY_SCOPES),
        cache_handler=MemoryCacheHandler(),
    )

    try:
        # Fetching the current user triggers the OAuth flow
        sp = spotipy.Spotify(auth_manager=auth_manager)
        user = sp.current_user()
    except (SpotifyOauthError, spotipy.SpotifyException) as e:
        print(f"❌ Authorization failed: {e}")
        return None

    print("✅ Authorization successful!")
    print(f"👤 User: {user.get('display_name') or user.get('id')}")

    token_info = auth_manager.get_cached_token() or {}
    return token_info.get('refresh_token')


if __name__ == "__main__":
    print("🎵 Spotify refresh token")
    print("=" * 40)

    refresh_token = get_spotify_refresh_token()

    if refresh_token:
        print("\n🎉 Add this line to your .env file:")
        print(f"SPOTIFY_REFRESH_TOKEN={refresh_token}")
    else:
        print("\n❌ Could not obtain a refresh token")
