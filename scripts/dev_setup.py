"""Prepare a checkout for local use: write .env and create the Emerson database."""
from __future__ import annotations

import argparse
import secrets
import sys
from pathlib import Path
from typing import Dict, Optional, Sequence

from dotenv import dotenv_values, set_key

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

REDACTED_KEYS = {"SECRET_KEY", "OPENROUTER_API_KEY"}


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Configure Emerson for local development.")
    parser.add_argument("--openrouter-api-key", help="Key used for manuscript analysis.")
    parser.add_argument("--model-path", help="Local checkpoint used when no OpenRouter key is set.")
    parser.add_argument("--database-url", help="SQLAlchemy URL; defaults to instance/emerson.db.")
    parser.add_argument("--env-path", type=Path, default=REPO_ROOT / ".env")
    parser.add_argument("--skip-db", action="store_true", help="Only write the .env file.")
    return parser.parse_args(argv)


def write_env(path: Path, args: argparse.Namespace) -> Dict[str, str]:
    current = dotenv_values(path) if path.exists() else {}
    updates = {
        "FLASK_APP": "wsgi.py",
        "OPENROUTER_API_KEY": args.openrouter_api_key,
        "TEXT_GENERATOR_MODEL_PATH": args.model_path,
        "DATABASE_URL": args.database_url,
    }
    if not current.get("SECRET_KEY"):
        updates["SECRET_KEY"] = secrets.token_hex(32)

    path.touch(exist_ok=True)
    for key, value in updates.items():
        if value:
            set_key(str(path), key, value, quote_mode="never")
    return {key: value or "" for key, value in dotenv_values(path).items()}


def create_database() -> None:
    # Imported late so the app picks up the .env written above.
    from emerson import create_app, db

    app = create_app()
    with app.app_context():
        db.create_all()
        print(f"Database ready at {app.config['SQLALCHEMY_DATABASE_URI']}.")


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    values = write_env(args.env_path, args)
    print(f"Wrote {args.env_path}:")
    for key in sorted(values):
        value = values[key]
        if key in REDACTED_KEYS and value:
            value = value[:4] + "..."
        print(f"  {key}={value}")

    if not args.skip_db:
        create_database()


if __name__ == "__main__":
    main()
