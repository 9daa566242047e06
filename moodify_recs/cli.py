"""
Command-Line Interface for Moodify Recs
=======================================

Usage:
    python -m moodify_recs.cli --mood <label> [options]
    python -m moodify_recs.cli --prompt "<text>" [options]

Options:
    --mood, -m      Mood label: Happy, Sad, Chill, Energetic, Romantic, Focus
    --prompt, -p    Free-text vibe description
    --language, -l  any, english or urdu (default: any)
    --user-token    Listener access token for a personalized playlist
    --output, -o    Output file path (default: stdout)
    --format        Output format: json or simple (default: json)
    --scores        Include score breakdowns in JSON output
    --verbose, -v   Verbose output with progress details
    --help, -h      Show this help message

Examples:
    python -m moodify_recs.cli --mood Chill
    python -m moodify_recs.cli --prompt "a rainy day in a cozy cafe" --format simple
    python -m moodify_recs.cli -m Happy -l english -o playlist.json
"""

import argparse
import asyncio
import logging
import os
import sys
from typing import List, Optional

from moodify_recs.config import MOOD_LABELS, OUTPUT_FORMAT
from moodify_recs.errors import MoodifyError
from moodify_recs.language import Language
from moodify_recs.recommender import PlaylistResult, RecommendationEngine


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser for CLI."""
    parser = argparse.ArgumentParser(
        prog='moodify_recs',
        description='🎵 Moodify Recs - Mood-based Playlist Generator',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --mood Chill
  %(prog)s --prompt "my girlfriend is mad at me" --format simple
  %(prog)s -m Happy -l urdu -o playlist.json

Environment Variables:
  SPOTIFY_CLIENT_ID      Your Spotify API client ID
  SPOTIFY_CLIENT_SECRET  Your Spotify API client secret
        """
    )

    parser.add_argument(
        '-m', '--mood',
        type=str,
        default=None,
        help=f'Mood label ({", ".join(MOOD_LABELS)})'
    )

    parser.add_argument(
        '-p', '--prompt',
        type=str,
        default=None,
        help='Free-text description of your vibe'
    )

    parser.add_argument(
        '-l', '--language',
        type=str,
        choices=[lang.value for lang in Language],
        default=Language.ANY.value,
        help='Restrict tracks to a language (default: any)'
    )

    parser.add_argument(
        '--user-token',
        type=str,
        default=os.environ.get('SPOTIFY_USER_TOKEN'),
        help='Listener access token for personalization (default: $SPOTIFY_USER_TOKEN)'
    )

    parser.add_argument(
        '-o', '--output',
        type=str,
        default=None,
        help='Output file path (default: print to stdout)'
    )

    parser.add_argument(
        '--format',
        type=str,
        choices=['json', 'simple'],
        default=OUTPUT_FORMAT,
        help='Output format (default: json)'
    )

    parser.add_argument(
        '--scores',
        action='store_true',
        help='Include score breakdowns in JSON output'
    )

    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Enable verbose output'
    )

    return parser


def format_output(result: PlaylistResult, fmt: str, include_scores: bool = False) -> str:
    """Format playlist output based on requested format."""
    if fmt == 'simple':
        lines = [f"🎵 {result.mood} playlist ({result.source})"]
        if result.username:
            lines.append(f"   For: {result.username}")
        if result.confirmation:
            lines.append(f"   {result.confirmation}")
        lines.extend([
            f"   {result.comfort}",
            "",
            "{0} Tracks:".format(len(result.tracks)),
            "-" * 50,
        ])
        for i, track in enumerate(result.tracks, 1):
            lines.append(f"{i:2}. {track.title}")
            lines.append(f"    Artist: {track.artist}")
            if i <= len(result.scores):
                lines.append(f"    Score: {result.scores[i - 1].final:.4f}")
            if track.match_reason:
                lines.append(f"    Why: {track.match_reason}")
            if track.spotify_url:
                lines.append(f"    Link: {track.spotify_url}")
            lines.append("")
        return '\n'.join(lines)

    return result.to_json(indent=2, include_scores=include_scores)


def validate_environment() -> bool:
    """Check if required environment variables are set."""
    client_id = os.environ.get('SPOTIFY_CLIENT_ID')
    client_secret = os.environ.get('SPOTIFY_CLIENT_SECRET')

    if not client_id or not client_secret:
        print("❌ Error: Spotify API credentials not found!", file=sys.stderr)
        print("", file=sys.stderr)
        print("Please set the following environment variables:", file=sys.stderr)
        print("  SPOTIFY_CLIENT_ID=your_client_id", file=sys.stderr)
        print("  SPOTIFY_CLIENT_SECRET=your_client_secret", file=sys.stderr)
        print("", file=sys.stderr)
        print("Get credentials at: https://developer.spotify.com/dashboard", file=sys.stderr)
        return False

    return True


def main(argv: Optional[List[str]] = None, engine: Optional[RecommendationEngine] = None) -> int:
    """Main entry point for CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.mood and not args.prompt:
        parser.error("one of --mood or --prompt is required")

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    if engine is None:
        if not validate_environment():
            return 1
        engine = RecommendationEngine()

    try:
        result = asyncio.run(engine.generate(
            mood=args.mood,
            prompt=args.prompt,
            language=args.language,
            user_token=args.user_token,
        ))
    except MoodifyError as e:
        print(f"❌ Error: {str(e)}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"❌ Error: {str(e)}", file=sys.stderr)
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1

    output = format_output(result, args.format, args.scores)

    if args.output:
        with open(args.output, 'w', encoding='utf-8') as f:
            f.write(output)
        print(f"✅ Playlist saved to: {args.output}")
    else:
        print(output)

    return 0


if __name__ == '__main__':
    sys.exit(main())
