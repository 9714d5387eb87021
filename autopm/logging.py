import logging, sys


def setup_logging(level: int = logging.INFO) -> logging.Logger:
    root = logging.getLogger()
    root.setLevel(level)
    if not any(getattr(h, "_autopm", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s [%(name)s] %(message)s"
        ))
        handler._autopm = True  # type: ignore[attr-defined]
        root.addHandler(handler)
    return logging.getLogger("autopm")
