# create_admin.py
import sys

from sqlmodel import Session

from app.database import create_db_and_tables, engine
from app.models import invoice, order, product, user  # noqa: F401
from app.repositories.user_repo import UserRepository
from app.services.user_service import UserService


def main():
    if len(sys.argv) != 2:
        print("Usage: python create_admin.py <email>")
        sys.exit(2)

    email = sys.argv[1]
    print(f"Promoting {email} to admin...")

    create_db_and_tables()
    with Session(engine) as session:
        user = UserService(UserRepository()).bootstrap_admin(session, email)

    print(f"Done: {user.email} is now admin.")

if __name__ == "__main__":
    main()
