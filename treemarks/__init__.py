import click
from flask import Flask

from treemarks.api import api_bp
from treemarks.config import Config
from treemarks.extensions import db, migrate
from treemarks.tree.reducer import initial_state
from treemarks.tree.repository import SqlRepository
from treemarks.tree.store import TreeStore


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)
    app.logger.setLevel(app.config["LOG_LEVEL"])

    db.init_app(app)
    migrate.init_app(app, db)

    app.register_blueprint(api_bp)

    def owner_store(owner_id):
        owner_id = owner_id or app.config["DEFAULT_OWNER_ID"]
        return TreeStore(SqlRepository(owner_id), owner_id=owner_id)

    @app.cli.command("init-db")
    def init_db_command():
        db.create_all()
        print("Initialized bookmark database.")

    @app.cli.command("seed-demo")
    @click.option("--owner", default=None, help="Owner id to seed for.")
    def seed_demo_command(owner):
        created = owner_store(owner).import_forest(initial_state().bookmarks)
        print(f"Seeded {created} demo bookmarks.")

    @app.cli.command("check-tree")
    @click.option("--owner", default=None, help="Owner id to check.")
    @click.option("--repair", is_flag=True, help="Fix what is found.")
    def check_tree_command(owner, repair):
        store = owner_store(owner)
        problems = store.repair() if repair else store.find_inconsistencies()
        for problem in problems:
            print(f"{problem.kind}: {problem.item_id} ({problem.detail})")
        if not problems:
            print("Bookmark tree is consistent.")
        elif repair:
            print(f"Repaired {len(problems)} problems.")

    with app.app_context():
        db.create_all()

    return app
