from typing import Optional

from sqlalchemy import select

from api.entities import Base, Product, SecurityAnswer, SecurityQuestion, User, make_engine
from api.shop_sqlalchemy import ShopSQLAlchemyClient

PRODUCTS = [
    ("Apple Juice (1000ml)", "The all-time classic.", 1.99, "apple_juice.jpg"),
    ("Orange Juice (1000ml)", "Made from oranges hand-picked by Uncle Dittmeyer.", 2.99, "orange_juice.jpg"),
    ("Eggfruit Juice (500ml)", "Now with even more exotic flavour.", 8.99, "eggfruit_juice.jpg"),
    ("Raspberry Juice (1000ml)", "Made from blended Raspberry Pi, water and sugar.", 4.99, "raspberry_juice.jpg"),
    ("Lemon Juice (500ml)", "Sour but full of vitamins.", 2.99, "lemon_juice.jpg"),
    ("Banana Juice (1000ml)", "Monkeys love it the most.", 1.49, "banana_juice.jpg"),
    ("Shop Logo T-Shirt", "Real fans wear it 24/7!", 22.49, "fan_shirt.jpg"),
    ("Shop Logo Mug", "Black mug with the regular logo on one side and the inverted logo on the other.", 21.99, "fan_mug.jpg"),
    ("Green Smoothie", "Looks poisonous but is actually very good for your health!", 1.99, "green_smoothie.jpg"),
    ("Arasaka Portable Neural Battery", "Keeps your implants running for a full night out.", 29.99, "neural_battery.jpg"),
]

USERS = [
    ("admin", "admin@juice-sh.op", "admin123", "admin"),
    ("jim", "jim@juice-sh.op", "ncc-1701", "customer"),
    ("bender", "bender@juice-sh.op", "OhG0dPlease1nsertLiquor!", "customer"),
]

QUESTIONS = [
    "Your eldest siblings middle name?",
    "Mother's maiden name?",
    "Name of your favorite pet?",
]

ANSWERS = [
    (1, 1, "Donald"),
    (2, 2, "Samuel"),
    (3, 3, "Stop'n'Drop"),
]


class ShopLocalClient(ShopSQLAlchemyClient):
    """A local mock: an in-memory SQLite storefront seeded with demo data."""

    def __init__(self, database_url: Optional[str] = None, seed: bool = True):
        engine = make_engine(database_url or "sqlite://")
        super().__init__(engine=engine, create_schema=True)
        if seed:
            self.seed()

    def seed(self) -> None:
        with self.Session.begin() as session:
            if session.scalars(select(User).limit(1)).first() is not None:
                return
            for username, email, password, role in USERS:
                session.add(User(username=username, email=email, password=password, role=role))
            for name, description, price, image in PRODUCTS:
                session.add(Product(name=name, description=description, price=price, deluxePrice=price, image=image))
            for question in QUESTIONS:
                session.add(SecurityQuestion(question=question))
            session.flush()
            for user_id, question_id, answer in ANSWERS:
                session.add(SecurityAnswer(UserId=user_id, SecurityQuestionId=question_id, answer=answer))
        self.logger.info("Seeded local shop database", extra={"extra_data": {"products": len(PRODUCTS), "users": len(USERS)}})
