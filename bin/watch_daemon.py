import argparse, logging, pathlib, sys
from hotdir.config import load_configs
from hotdir.loader import watch_directories

def _print_file(path: pathlib.Path):
    print(f"[watch] created: {path}", flush=True)

def main(argv=None):
    ap = argparse.ArgumentParser(description="Report files created in the given directories")
    ap.add_argument("--dir", action="append", default=None, help="Directory to watch (repeatable; defaults to watch.paths from config)")
    ap.add_argument("--log-level", default=None, help="Logging level (INFO, DEBUG, ...)")
    args = ap.parse_args(argv)
    cfg = load_configs()
    level = (args.log_level or cfg.get("logging", {}).get("level", "INFO")).upper()
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format="[%(asctime)s] %(levelname)s %(name)s: %(message)s")
    paths = [pathlib.Path(d).resolve() for d in args.dir] if args.dir else None
    loader = watch_directories(paths, handler=_print_file, cfg=cfg)
    for path, exc in loader.registration_report.failed.items():
        print(f"[watch] skipped {path}: {exc}", file=sys.stderr)
    if not loader.watched:
        loader.source.close()
        loader.join()
        return 1
    print(f"[watch] monitoring {', '.join(map(str, loader.watched))} … (Ctrl+C to quit)")
    try:
        while not loader.join(timeout=1.0):
            pass
    except KeyboardInterrupt:
        loader.stop()
    finally:
        loader.source.close()
        loader.join()
    print(f"[watch] {len(loader.files)} file(s) seen")
    return 0 if loader.error is None or loader.stopped else 1

if __name__ == "__main__":
    sys.exit(main())
