"""Catalog users and the movies they follow."""

from __future__ import annotations

from typing import Literal

from ..errors import ConflictError, NotFoundError
from ..models import User, UserCreate, UserUpdate
from ..repositories import UserRepository

ListField = Literal["watchlist", "favorites"]


class UserService:
    """CRUD and list membership for users.

    Movie ids on a user are not checked against the catalog.
    """

    def __init__(self, repository: UserRepository):
        self._repository = repository

    async def create_user(self, data: UserCreate) -> User:
        if await self._repository.find_by_email(data.email) is not None:
            raise ConflictError("User with this email already exists")
        return await self._repository.create(data)

    async def list_users(self) -> list[User]:
        return await self._repository.find_all()

    async def get_user(self, user_id: str) -> User:
        user = await self._repository.find_by_id(user_id)
        if user is None:
            raise NotFoundError("User", "ID", user_id)
        return user

    async def get_user_by_email(self, email: str) -> User:
        user = await self._repository.find_by_email(email)
        if user is None:
            raise NotFoundError("User", "email", email)
        return user

    async def update_user(self, user_id: str, update: UserUpdate) -> User:
        user = await self.get_user(user_id)
        changes = update.changes()
        email = changes.get("email")
        if email and email != user.email:
            if await self._repository.find_by_email(email) is not None:
                raise ConflictError("User with this email already exists")
        return await self._repository.save(user.model_copy(update=changes))

    async def delete_user(self, user_id: str) -> None:
        if await self._repository.delete(user_id) is None:
            raise NotFoundError("User", "ID", user_id)

    async def add_to_watchlist(self, user_id: str, movie_id: str) -> User:
        return await self._add(user_id, movie_id, "watchlist")

    async def remove_from_watchlist(self, user_id: str, movie_id: str) -> User:
        return await self._remove(user_id, movie_id, "watchlist")

    async def add_to_favorites(self, user_id: str, movie_id: str) -> User:
        return await self._add(user_id, movie_id, "favorites")

    async def remove_from_favorites(self, user_id: str, movie_id: str) -> User:
        return await self._remove(user_id, movie_id, "favorites")

    async def _add(self, user_id: str, movie_id: str, field: ListField) -> User:
        user = await self.get_user(user_id)
        movie_ids: list[str] = getattr(user, field)
        if movie_id in movie_ids:
            return user
        return await self._repository.save(
            user.model_copy(update={field: [*movie_ids, movie_id]})
        )

    async def _remove(self, user_id: str, movie_id: str, field: ListField) -> User:
        user = await self.get_user(user_id)
        movie_ids = [value for value in getattr(user, field) if value != movie_id]
        return await self._repository.save(user.model_copy(update={field: movie_ids}))
