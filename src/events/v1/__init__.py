from src.events.v1 import compact, storage  # noqa: F401
