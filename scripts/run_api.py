import argparse
import os
import subprocess
import sys
from pathlib import Path


def main():
    parser = argparse.ArgumentParser(description="Serve the offer engine API with uvicorn")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--reload", action="store_true", help="Restart on source changes (development)")
    args = parser.parse_args()

    project_root = Path(__file__).parent.parent

    # Serve from src/ without requiring an install; data paths come from Settings
    env = os.environ.copy()
    src_path = str(project_root / "src")
    env["PYTHONPATH"] = os.pathsep.join(p for p in (src_path, env.get("PYTHONPATH")) if p)

    command = [
        sys.executable, "-m", "uvicorn", "offer_engine.api.main:app",
        "--host", args.host,
        "--port", str(args.port),
    ]
    if args.reload:
        command += ["--reload", "--reload-dir", src_path]

    print(f"Offer Engine API on http://{args.host}:{args.port} (data: {env.get('OFFER_ENGINE_DATA_DIR', 'data/')})")
    try:
        subprocess.run(command, env=env, check=False)
    except KeyboardInterrupt:
        print("\nAPI stopped.")


if __name__ == "__main__":
    main()
