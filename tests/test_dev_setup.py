import sys
from pathlib import Path

from dotenv import dotenv_values

sys.path.append(str(Path(__file__).resolve().parents[1] / "scripts"))

import dev_setup


def test_env_file_gets_key_and_stable_secret(tmp_path, capsys):
    env_path = tmp_path / ".env"
    env_path.write_text("CLASSIFICATION_WORKERS=4\n")

    dev_setup.main(["--env-path", str(env_path), "--skip-db", "--openrouter-api-key", "sk-or-test"])
    first = dotenv_values(env_path)

    assert first["FLASK_APP"] == "wsgi.py"
    assert first["OPENROUTER_API_KEY"] == "sk-or-test"
    assert first["CLASSIFICATION_WORKERS"] == "4"
    assert len(first["SECRET_KEY"]) == 64
    assert "DATABASE_URL" not in first
    assert "sk-or-test" not in capsys.readouterr().out

    dev_setup.main(["--env-path", str(env_path), "--skip-db", "--model-path", "/models/tiny"])
    second = dotenv_values(env_path)

    assert second["SECRET_KEY"] == first["SECRET_KEY"]
    assert second["OPENROUTER_API_KEY"] == "sk-or-test"
    assert second["TEXT_GENERATOR_MODEL_PATH"] == "/models/tiny"
