from urllib.parse import quote
from flask_sqlalchemy import SQLAlchemy
from flask_login import UserMixin
from datetime import datetime

from constants import WHATSAPP_MESSAGE, LISTING_TYPES, PRICE_TYPES

db = SQLAlchemy()

class User(UserMixin, db.Model):
    # Same id the identity provider issues (a UUID string)
    id = db.Column(db.String(36), primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False)
    full_name = db.Column(db.String(100), nullable=True)
    department = db.Column(db.String(100), nullable=True)
    scholar_id = db.Column(db.String(20), nullable=True)

    # CONTACT: digits only, with country code (what wa.me expects)
    whatsapp_number = db.Column(db.String(20), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    items = db.relationship('Item', backref='seller', lazy=True, order_by='Item.created_at.desc()')

    @property
    def is_profile_complete(self):
        """True once name, department and scholar id are filled in."""
        return bool(self.full_name and self.department and self.scholar_id)

    @property
    def display_name(self):
        return self.full_name or self.email.split('@')[0]

class Item(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=False)
    price = db.Column(db.Float, nullable=False, default=0)
    price_type = db.Column(db.String(20), default='fixed')  # 'fixed' or 'negotiable'
    category = db.Column(db.String(50), nullable=False)
    listing_type = db.Column(db.String(10), nullable=False, default='sell')  # 'sell', 'buy' or 'rent'
    condition = db.Column(db.String(50), nullable=True)

    # Ordered public URLs, first one is the cover
    images = db.Column(db.JSON, nullable=False, default=list)

    user_id = db.Column(db.String(36), db.ForeignKey('user.id'), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def cover_image(self):
        return self.images[0] if self.images else None

    @property
    def listing_type_label(self):
        return dict(LISTING_TYPES).get(self.listing_type, self.listing_type)

    @property
    def price_type_label(self):
        return dict(PRICE_TYPES).get(self.price_type, self.price_type)

    @property
    def contact_url(self):
        """WhatsApp chat link for the seller, or None if they have no number."""
        if not self.seller or not self.seller.whatsapp_number:
            return None
        message = quote(WHATSAPP_MESSAGE.format(title=self.title))
        return f"https://wa.me/{self.seller.whatsapp_number}?text={message}"
