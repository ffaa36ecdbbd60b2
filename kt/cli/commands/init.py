"""Init command: create a vault-local knowledge base in the current directory."""

from pathlib import Path

from kt.cli.commands.helpers import print_json
from kt.storage import KnowledgeStore
from kt.utils import DB_FILENAME, VAULT_DIR_NAME, KtConfig


def cmd_init(args, config: KtConfig):
    """Create ``.kt/kt.db`` here. Commands run anywhere below this directory use it."""
    vault_root = Path.cwd()
    vault_dir = vault_root / VAULT_DIR_NAME
    db_path = vault_dir / DB_FILENAME
    created = not vault_dir.exists()

    if created:
        vault_dir.mkdir(parents=True)
        with KnowledgeStore(db_path, embedding_dimension=config.embed_dimension):
            pass

    if args.json:
        print_json({"vault_root": str(vault_root), "db_path": str(db_path), "created": created})
        return

    if not created:
        print("kt already initialized in this directory.")
        return
    print(f"Initialized kt in {vault_dir}")
    print("Knowledge base ready. Use `kt capture` to start.")
