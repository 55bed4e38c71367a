from __future__ import annotations


class Book:
    """Represents a single cataloged book."""

    __slots__ = ("id", "title", "authors", "year", "description", "categories",
                 "publisher", "price", "month")

    def __init__(self, id: int, title: str, authors: str = "", year: str = "",
                 description: str = "", categories: str = "", publisher: str = "",
                 price: str = "", month: str = "") -> None:
        object.__setattr__(self, "id", int(id))
        object.__setattr__(self, "title", (title or "").strip())
        object.__setattr__(self, "authors", (authors or "").strip())
        object.__setattr__(self, "year", (year or "").strip())
        object.__setattr__(self, "description", description or "")
        object.__setattr__(self, "categories", (categories or "").strip())
        object.__setattr__(self, "publisher", (publisher or "").strip())
        object.__setattr__(self, "price", (price or "").strip())
        object.__setattr__(self, "month", (month or "").strip())

    def __setattr__(self, name, value):
        raise AttributeError(f"Book is immutable (tried to set {name!r})")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Book):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    def __repr__(self) -> str:
        return f"Book(id={self.id}, title={self.title!r})"

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.title} by {self.authors} ({self.year})"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "authors": self.authors,
            "year": self.year,
            "description": self.description,
            "categories": self.categories,
            "publisher": self.publisher,
            "price": self.price,
            "month": self.month,
        }

    @staticmethod
    def from_dict(data: dict) -> "Book":
        # Rows from the Libri table use the Italian column names
        return Book(
            id=data.get("id"),
            title=data.get("title", data.get("titolo", "")),
            authors=data.get("authors", data.get("autori", "")),
            year=data.get("year", data.get("anno", "")) or "",
            description=data.get("description", data.get("descrizione", "")) or "",
            categories=data.get("categories", data.get("categorie", "")) or "",
            publisher=data.get("publisher", data.get("editore", "")) or "",
            price=data.get("price", data.get("prezzo", "")) or "",
            month=data.get("month", data.get("mese", "")) or "",
        )
