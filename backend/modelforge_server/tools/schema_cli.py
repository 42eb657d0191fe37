"""
Schema CLI tool for ModelForge.

This tool checks model definition files offline:
- validate: Validate one or more definition files
- columns: Show the storage binding a definition would produce

Usage:
    modelforge-schema validate models-config/*.json
    modelforge-schema columns models-config/Product.json --format json

Invariants:
    - Any invalid file causes a non-zero exit code
    - Two files claiming one model name or one table are reported as errors
    - No server, database or network access is needed

How to change safely:
    - Add new commands, don't modify existing ones
    - Keep output format stable for CI parsing
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional

from ..errors import ValidationError
from ..schema.registry import bind_storage
from ..schema.types import ModelDefinition
from ..schema.validate import validate_definition

logger = logging.getLogger(__name__)


def _load(path: str) -> ModelDefinition:
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        raise ValidationError(f"Cannot read {path}: {e}", errors=[str(e)]) from e
    return validate_definition(data)


class SchemaCLI:
    """CLI tool for definition file checks.

    Example:
        >>> cli = SchemaCLI()
        >>> cli.validate(["models-config/Product.json"])
        {}
        >>> cli.columns("models-config/Product.json")["table"]
        'products'
    """

    def validate(self, paths: list[str]) -> dict[str, list[str]]:
        """Validate definition files individually and as a set.

        Args:
            paths: Definition file paths

        Returns:
            Path -> list of errors, only for paths with errors
        """
        problems: dict[str, list[str]] = {}
        model_owners: dict[str, str] = {}
        table_owners: dict[str, str] = {}

        for path in paths:
            try:
                definition = _load(path)
            except ValidationError as e:
                problems[path] = e.errors or [e.message]
                continue

            errors: list[str] = []
            other = model_owners.setdefault(definition.name, path)
            if other != path:
                errors.append(f"Model '{definition.name}' is also defined in {other}")

            table = definition.resolved_table_name
            owner = table_owners.setdefault(table, path)
            if owner != path:
                errors.append(f"Table '{table}' is also bound by {owner}")

            if errors:
                problems[path] = errors
        return problems

    def columns(self, path: str) -> dict[str, Any]:
        """Storage binding for one definition file.

        Raises:
            ValidationError: If the file is unreadable or invalid
        """
        definition = _load(path)
        result = bind_storage(definition).to_dict()
        result["model"] = definition.name
        result["unique"] = [f.name for f in definition.fields if f.unique]
        return result


def main(argv: Optional[list[str]] = None) -> None:
    """CLI entry point for schema tool."""
    parser = argparse.ArgumentParser(description="ModelForge definition file tool")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # validate command
    validate_parser = subparsers.add_parser("validate", help="Validate definition files")
    validate_parser.add_argument("paths", nargs="+", help="Definition JSON files")

    # columns command
    columns_parser = subparsers.add_parser("columns", help="Show the storage binding")
    columns_parser.add_argument("path", help="Definition JSON file")
    columns_parser.add_argument(
        "--format", choices=["text", "json"], default="text", help="Output format"
    )

    args = parser.parse_args(argv)
    cli = SchemaCLI()

    if args.command == "validate":
        problems = cli.validate(args.paths)

        if not problems:
            print(f"{len(args.paths)} definition file(s) valid")
            sys.exit(0)
        else:
            print(f"Validation failed for {len(problems)} file(s):")
            for path, errors in problems.items():
                print(f"  {Path(path).name}:")
                for error in errors:
                    print(f"    - {error}")
            sys.exit(1)

    elif args.command == "columns":
        try:
            binding = cli.columns(args.path)
        except ValidationError as e:
            print(e.message, file=sys.stderr)
            sys.exit(1)

        if args.format == "json":
            print(json.dumps(binding, indent=2))
        else:
            print(f"{binding['model']} -> {binding['table']}")
            print("  id TEXT PRIMARY KEY")
            for name, column_type in binding["columns"].items():
                marker = " UNIQUE" if name in binding["unique"] else ""
                print(f"  {name} {column_type}{marker}")
            print("  created_at INTEGER")
            print("  updated_at INTEGER")
        sys.exit(0)


if __name__ == "__main__":
    main()
