import uuid

from app import app, db
from models import User, Item

# This script populates your local DB with a demo seller and a few listings
with app.app_context():
    db.create_all()

    demo_email = f"demo.seller@{app.config['INSTITUTE_EMAIL_DOMAIN']}"
    seller = User.query.filter_by(email=demo_email).first()
    if not seller:
        seller = User(
            id=str(uuid.uuid4()),
            email=demo_email,
            full_name="Demo Seller",
            department="Computer Science and Engineering",
            scholar_id="2012001",
            whatsapp_number="919876543210",
        )
        db.session.add(seller)
        db.session.commit()

    listings = [
        {"title": "Engineering Drawing Kit", "description": "Mini drafter, set squares and compass. Used for one semester.",
         "price": 450, "category": "Lab Equipment", "listing_type": "sell", "condition": "Good"},
        {"title": "HC Verma Concepts of Physics (Vol 1 & 2)", "description": "Some pencil notes, otherwise clean.",
         "price": 600, "price_type": "negotiable", "category": "Books/Notes", "listing_type": "sell", "condition": "Used"},
        {"title": "Study Table", "description": "Looking for a sturdy study table for the hostel room.",
         "price": 1500, "category": "Furniture", "listing_type": "buy"},
        {"title": "Scientific Calculator", "description": "Casio fx-991ES available for the exam week.",
         "price": 50, "category": "Electronics", "listing_type": "rent", "condition": "Like new"},
    ]

    # Add them to DB if they don't exist
    for listing in listings:
        exists = Item.query.filter_by(title=listing["title"], user_id=seller.id).first()
        if not exists:
            db.session.add(Item(user_id=seller.id, images=[], **listing))

    db.session.commit()
    print("✅ Demo listings seeded!")
