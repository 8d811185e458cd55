from __future__ import annotations

import json
from typing import Union

BookId = Union[int, str]


class InvalidBookError(ValueError):
    """Raised when a stored record cannot be turned back into a Book."""


class Book:
    """A single book in the collection.

    ``id`` is assigned by the storage backend at creation time: an integer for
    the memory and Redis stores, an ObjectId hex string for MongoDB.
    """

    def __init__(self, title: str, author: str, id: BookId | None = None) -> None:
        self.id = id
        self.title = title
        self.author = author

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.title} by {self.author} (ID: {self.id})"

    def __repr__(self) -> str:
        return f"Book(id={self.id!r}, title={self.title!r}, author={self.author!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Book):
            return NotImplemented
        return (self.id, self.title, self.author) == (other.id, other.title, other.author)

    def to_dict(self) -> dict:
        return {"id": self.id, "title": self.title, "author": self.author}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    @staticmethod
    def from_dict(data: dict) -> "Book":
        if not isinstance(data, dict):
            raise InvalidBookError(f"Expected an object, got {type(data).__name__}")
        try:
            title = data["title"]
            author = data["author"]
        except KeyError as exc:
            raise InvalidBookError(f"Missing field: {exc.args[0]}") from exc
        if not isinstance(title, str) or not isinstance(author, str):
            raise InvalidBookError("Fields 'title' and 'author' must be strings")
        return Book(title=title, author=author, id=data.get("id"))

    @staticmethod
    def from_json(raw: str) -> "Book":
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as exc:
            raise InvalidBookError(f"Malformed book JSON: {exc}") from exc
        return Book.from_dict(data)
