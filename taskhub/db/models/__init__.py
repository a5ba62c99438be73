"""taskhub models."""

import pkgutil
from pathlib import Path

APPS = ("project_manager",)


def load_all_models() -> None:
    """Load all models so they register on the shared metadata."""
    db_models_dir = Path(__file__).resolve().parent
    for module_info in pkgutil.walk_packages(
        path=[str(db_models_dir)],
        prefix="taskhub.db.models.",
    ):
        if not module_info.name.endswith("__init__"):
            __import__(module_info.name)

    package_root = Path(__file__).resolve().parent.parent.parent
    for app in APPS:
        models_file = package_root / app / "models.py"
        if models_file.exists():
            __import__(f"taskhub.{app}.models")
