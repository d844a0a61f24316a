from __future__ import annotations

import argparse
import sys
from pathlib import Path


def _add_backend_to_path() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    backend_root = repo_root / "backend"
    if str(backend_root) not in sys.path:
        sys.path.insert(0, str(backend_root))


def main() -> int:
    ap = argparse.ArgumentParser(description="Print the field dependency graph of a form config.")
    ap.add_argument("config", help="表单配置文件（JSON/YAML）")
    ap.add_argument("--changed", nargs="*", default=[], help="可选：打印这些字段变化后需要重算的字段")
    args = ap.parse_args()

    _add_backend_to_path()
    from dynaform.config import load_config_file, setup_logging  # type: ignore
    from dynaform.dependency import build_dependency_graph, find_cycles, get_fields_to_recalculate  # type: ignore

    setup_logging()

    config = load_config_file(Path(args.config), validate=False)
    graph = build_dependency_graph(config.fields)

    if not graph:
        print("(no dependencies)")
    for source in sorted(graph):
        print(f"{source} -> {', '.join(sorted(graph[source]))}")

    for cycle in find_cycles(graph):
        print(f"CYCLE: {' -> '.join(cycle)}")

    if args.changed:
        affected = get_fields_to_recalculate(args.changed, graph)
        print(f"\nrecalculate after {args.changed}: {affected}")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
