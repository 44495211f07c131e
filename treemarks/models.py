from datetime import datetime, timezone

from treemarks.extensions import db
from treemarks.tree.entity import Entity, Folder, Leaf, child_ids


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BookmarkRecord(db.Model):
    __tablename__ = "bookmarks"

    pk = db.Column(db.Integer, primary_key=True)
    id = db.Column(db.String(64), unique=True, nullable=False, index=True)
    user_id = db.Column(db.String(120), nullable=False, index=True)
    title = db.Column(db.String(512), nullable=False)
    url = db.Column(db.Text, nullable=True)
    is_folder = db.Column(db.Boolean, nullable=False, default=False)
    parent_id = db.Column(db.String(64), nullable=True, index=True)
    children = db.Column(db.JSON, nullable=False, default=list)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (db.Index("ix_bookmark_user_parent", "user_id", "parent_id"),)

    def to_entity(self) -> Entity:
        if self.is_folder:
            return Folder(
                id=self.id,
                title=self.title,
                children=tuple(self.children or ()),
                parent_id=self.parent_id,
                created_at=self.created_at,
                updated_at=self.updated_at,
                user_id=self.user_id,
            )
        return Leaf(
            id=self.id,
            title=self.title,
            url=self.url or "",
            parent_id=self.parent_id,
            created_at=self.created_at,
            updated_at=self.updated_at,
            user_id=self.user_id,
        )

    def apply(self, entity: Entity) -> None:
        self.id = entity.id
        self.title = entity.title
        self.is_folder = entity.is_folder
        self.parent_id = entity.parent_id
        # JSON columns only notice reassignment, never in-place edits.
        self.children = list(child_ids(entity))
        self.url = entity.url if isinstance(entity, Leaf) else None
        if entity.created_at:
            self.created_at = entity.created_at
        if entity.updated_at:
            self.updated_at = entity.updated_at
