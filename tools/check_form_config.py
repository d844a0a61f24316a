import argparse
import sys
from pathlib import Path


def _add_backend_to_path() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    backend_root = repo_root / "backend"
    if str(backend_root) not in sys.path:
        sys.path.insert(0, str(backend_root))


def _collect_inputs(paths: list[str]) -> list[Path]:
    inputs: list[Path] = []
    for raw in paths:
        path = Path(raw)
        if path.is_dir():
            for pattern in ("*.json", "*.yaml", "*.yml"):
                inputs.extend(sorted(path.glob(pattern)))
        else:
            inputs.append(path)
    return inputs


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Validate dynamic form config documents (JSON/YAML)."
    )
    parser.add_argument("paths", nargs="+", help="配置文件或目录")
    parser.add_argument(
        "--format",
        choices=["json", "yaml"],
        default=None,
        help="强制指定格式（默认按后缀/内容识别）",
    )
    parser.add_argument(
        "--dump",
        choices=["json", "yaml"],
        default=None,
        help="可选：校验通过后按指定格式输出规范化文档",
    )
    args = parser.parse_args()

    _add_backend_to_path()
    from dynaform.config import dump_config, parse, setup_logging, validate_config  # type: ignore
    from dynaform.interfaces import ParseError  # type: ignore

    setup_logging()

    inputs = _collect_inputs(args.paths)
    if not inputs:
        print("未找到配置文件")
        return 1

    failed = 0
    for path in inputs:
        try:
            config = parse(path.read_text(encoding="utf-8"), args.format)
        except (OSError, ParseError) as exc:
            print(f"{path}: ERROR {exc}")
            failed += 1
            continue

        result = validate_config(config)
        if not result.valid:
            failed += 1
            print(f"{path}: INVALID ({len(result.errors)})")
            for error in result.errors:
                print(f"  - {error}")
            continue

        leaf_count = len(config.leaf_fields())
        print(f"{path}: OK formId={config.form_id} fields={leaf_count} buttons={len(config.buttons)}")
        if args.dump:
            print(dump_config(config, args.dump))

    return 1 if failed else 0


if __name__ == "__main__":
    raise SystemExit(main())
