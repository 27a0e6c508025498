from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any, ClassVar, Dict, Optional, Union

ROOT_ID = "root"

UNSORTED_FOLDER_ID = "unsorted-folder"
UNSORTED_TITLE = "Unsorted"
# Below every order a regular folder can get, so Unsorted lists first at root.
UNSORTED_ORDER = -1

FOLDER = "folder"
LINK = "link"


@dataclass
class Folder:
    id: str
    title: str
    parent_id: str = ROOT_ID
    order: int = 0
    depth: Optional[int] = None

    type: ClassVar[str] = FOLDER

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "parentId": self.parent_id,
            "order": self.order,
        }
        if self.depth is not None:
            d["depth"] = self.depth
        return d


@dataclass
class Link:
    id: str
    title: str
    url: str
    parent_id: str = ROOT_ID
    order: int = 0

    type: ClassVar[str] = LINK

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "url": self.url,
            "parentId": self.parent_id,
            "order": self.order,
        }


Item = Union[Folder, Link]


def new_id() -> str:
    return str(uuid.uuid4())


def is_unsorted(item_or_id: Union[Item, str, None]) -> bool:
    if isinstance(item_or_id, (Folder, Link)):
        return item_or_id.id == UNSORTED_FOLDER_ID
    return item_or_id == UNSORTED_FOLDER_ID


def make_unsorted_folder() -> Folder:
    return Folder(
        id=UNSORTED_FOLDER_ID,
        title=UNSORTED_TITLE,
        parent_id=ROOT_ID,
        order=UNSORTED_ORDER,
        depth=0,
    )
