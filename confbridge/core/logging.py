import logging


class OptionalExtraFormatter(logging.Formatter):
    """Formatter that appends selected extra attributes only when they are present
    and non-empty so that lines without extras stay clean.

    Extra attributes we care about: ``call_id``, ``rule``.
    """

    EXTRA_KEYS = ("call_id", "rule")

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)

        extras: list[str] = []
        for key in self.EXTRA_KEYS:
            value = getattr(record, key, None)
            if value:
                extras.append(f"{key}={value}")

        if extras:
            base = f"{base} {' '.join(extras)}"
        return base


def configure_logging(level: str = "INFO") -> None:
    """Install a single stream handler on the root logger.

    Safe to call more than once: previously installed root handlers are removed.
    """
    root = logging.getLogger()
    for h in root.handlers[:]:
        root.removeHandler(h)

    handler = logging.StreamHandler()
    handler.setFormatter(
        OptionalExtraFormatter(
            "%(asctime)s.%(msecs)03d %(levelname)s [%(module)s] %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    root.setLevel(level.upper())
    root.addHandler(handler)
