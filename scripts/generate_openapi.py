"""Write the OpenAPI schema of the chat API to a JSON file.

Usage:
    python -m scripts.generate_openapi --output openapi.json
"""

import argparse
import json
from pathlib import Path

from app.main import app


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate the OpenAPI schema")
    parser.add_argument("--output", default="openapi.json", help="Output path")
    args = parser.parse_args()

    schema = app.openapi()
    output = Path(args.output)
    output.write_text(json.dumps(schema, indent=2, ensure_ascii=False) + "\n")
    print(f"Generated {output} ({len(schema['paths'])} paths)")


if __name__ == "__main__":
    main()
