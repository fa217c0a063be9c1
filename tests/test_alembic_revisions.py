"""Migration chain and schema coverage."""

import re
from pathlib import Path

from alembic.config import Config
from alembic.script import ScriptDirectory

import lq.db.models  # noqa: F401  (registers tables on Base.metadata)
from lq.db.base import Base

ROOT = Path(__file__).resolve().parents[1]


def _script() -> ScriptDirectory:
    config = Config(str(ROOT / "alembic.ini"))
    config.set_main_option("script_location", str(ROOT / "alembic"))
    return ScriptDirectory.from_config(config)


def test_single_linear_head() -> None:
    script = _script()
    assert script.get_heads() == ["005_member_xp_awarded"]
    chain = [rev.revision for rev in script.walk_revisions()]
    assert chain == [
        "005_member_xp_awarded",
        "004_hackathon_tables",
        "003_classroom_tables",
        "002_ledger_tables",
        "001_accounts",
    ]


def test_every_model_table_is_migrated() -> None:
    sql = "\n".join(p.read_text() for p in (ROOT / "alembic" / "versions").glob("*.py"))
    created = set(re.findall(r"CREATE TABLE IF NOT EXISTS (\w+)", sql))
    assert set(Base.metadata.tables) <= created
