from sqlalchemy.orm import Session
from ..db.models import UserModel


class UserRepository:
    def __init__(self, db: Session):
        self.db = db

    def add_reward_points(self, user_id: int, points: int) -> None:
        # Increment in SQL so concurrent submits by the same user do not lose updates
        self.db.query(UserModel).filter(UserModel.id == user_id).update(
            {UserModel.reward_points: UserModel.reward_points + points},
            synchronize_session=False,
        )
