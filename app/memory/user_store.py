import json
import logging
import os
import threading

from datetime import datetime, timezone
from typing import Dict, Optional

from app.config import STORAGE_DIR, USERS_FILE
from app.errors import NotFound
from app.models import UserProfile, UserRecord


logger = logging.getLogger(__name__)


class UserStore:
    """
    User records and their embedding API keys.

    The default read (get_profile) never returns the key. Only
    get_api_key does, and only the embedding call uses it.
    """

    def __init__(self, storage_dir: str = STORAGE_DIR):

        self._storage_dir = storage_dir
        self._path = os.path.join(storage_dir, USERS_FILE)
        self._users: Dict[str, UserRecord] = {}
        self._lock = threading.Lock()

        self._load_from_disk()


    def ensure_user(
        self,
        user_id: str,
        email: Optional[str] = None,
        name: Optional[str] = None,
    ) -> UserProfile:
        """Create the user on first sight, otherwise refresh last_active."""

        with self._lock:

            user = self._users.get(user_id)

            if user is None:

                user = UserRecord(id=user_id, email=email, name=name)

                logger.info("New user created", extra={"user_id": user_id})

            else:

                changes = {"last_active": datetime.now(timezone.utc)}

                if email:
                    changes["email"] = email

                if name:
                    changes["name"] = name

                user = user.model_copy(update=changes)

            self._commit(user)

            return _to_profile(user)


    def get_profile(self, user_id: str) -> UserProfile:

        with self._lock:
            user = self._require(user_id)
            return _to_profile(user)


    def get_api_key(self, user_id: str) -> Optional[str]:
        """Privileged read. Unknown users simply have no key."""

        with self._lock:

            user = self._users.get(user_id)

            return user.api_key if user else None


    def set_api_key(self, user_id: str, api_key: str) -> UserProfile:

        with self._lock:

            user = self._require(user_id).model_copy(
                update={"api_key": api_key.strip()}
            )

            self._commit(user)

        logger.info("API key saved", extra={"user_id": user_id})

        return _to_profile(user)


    def delete_api_key(self, user_id: str) -> UserProfile:

        with self._lock:

            user = self._require(user_id).model_copy(update={"api_key": None})

            self._commit(user)

        logger.info("API key deleted", extra={"user_id": user_id})

        return _to_profile(user)


    def _require(self, user_id: str) -> UserRecord:

        user = self._users.get(user_id)

        if user is None:
            raise NotFound("User not found")

        return user


    def _commit(self, user: UserRecord):
        """Persist `user`; memory changes only once the file is written."""

        users = {**self._users, user.id: user}

        self._save_to_disk(users)

        self._users = users


    # ============================================================
    # PERSISTENCE
    # ============================================================

    def _load_from_disk(self):

        os.makedirs(self._storage_dir, exist_ok=True)

        if not os.path.exists(self._path):
            return

        with open(self._path, "r") as f:
            data = json.load(f)

        self._users = {
            user_id: UserRecord.model_validate(item)
            for user_id, item in data.items()
        }


    def _save_to_disk(self, users: Dict[str, UserRecord]):

        tmp_path = self._path + ".tmp"

        try:

            with open(tmp_path, "w") as f:

                json.dump(
                    {
                        user_id: user.model_dump(mode="json")
                        for user_id, user in users.items()
                    },
                    f,
                )

            os.replace(tmp_path, self._path)

        except (OSError, TypeError, ValueError) as e:

            logger.error(
                "User store write failed",
                extra={"path": self._path, "error": str(e)},
            )

            if os.path.exists(tmp_path):
                os.remove(tmp_path)

            raise


def _to_profile(user: UserRecord) -> UserProfile:

    return UserProfile(
        id=user.id,
        email=user.email,
        name=user.name,
        has_api_key=bool(user.api_key),
        created_at=user.created_at,
        last_active=user.last_active,
    )
