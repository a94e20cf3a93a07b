"""
Unit tests for database models.

These test that the database models work correctly.
Run: pytest tests/test_models.py -v
"""
import pytest
from urllib.parse import unquote
from sqlalchemy.exc import IntegrityError
from app import db
from models import User, Item


@pytest.mark.unit
class TestUserModel:
    """Test User model"""

    def test_create_user(self, client):
        """Test creating a user in the database"""
        user = User(id='aaaaaaaa-0000-0000-0000-000000000000', email='new@nits.ac.in')
        db.session.add(user)
        db.session.commit()

        # Check user was created with correct values
        assert user.email == 'new@nits.ac.in'
        assert user.full_name is None
        assert user.created_at is not None
        assert user.updated_at is not None

    def test_user_email_unique(self, client, test_user):
        """Test that email addresses must be unique"""
        duplicate = User(id='bbbbbbbb-0000-0000-0000-000000000000', email=test_user.email)
        db.session.add(duplicate)

        # Should raise an error when committing
        with pytest.raises(IntegrityError):
            db.session.commit()
        db.session.rollback()

    def test_profile_completeness(self, client, test_user):
        """Name, department and scholar id make a complete profile"""
        assert test_user.is_profile_complete == True

        fresh = User(id='cccccccc-0000-0000-0000-000000000000', email='fresh@nits.ac.in', full_name='Fresh')
        assert fresh.is_profile_complete == False

    def test_display_name_falls_back_to_email(self, client):
        user = User(id='dddddddd-0000-0000-0000-000000000000', email='rahul.k@nits.ac.in')
        assert user.display_name == 'rahul.k'
        user.full_name = 'Rahul Kumar'
        assert user.display_name == 'Rahul Kumar'

    def test_user_relationships(self, client, test_user, test_item):
        """Test that user-item relationship works"""
        user = db.session.get(User, test_user.id)
        item = db.session.get(Item, test_item.id)
        # User should have items
        assert len(user.items) == 1
        assert user.items[0].id == item.id
        # Item should have seller
        assert item.seller.id == user.id


@pytest.mark.unit
class TestItemModel:
    """Test Item model"""

    def test_item_defaults(self, client, test_user):
        item = Item(title='Chair', description='Plastic chair', price=150,
                    category='Furniture', user_id=test_user.id)
        db.session.add(item)
        db.session.commit()

        assert item.images == []
        assert item.price_type == 'fixed'
        assert item.listing_type == 'sell'
        assert item.cover_image is None
        assert item.created_at is not None

    def test_cover_image_is_first(self, client, test_item):
        test_item.images = ['/uploads/a.jpg', '/uploads/b.jpg']
        db.session.commit()
        assert test_item.cover_image == '/uploads/a.jpg'

    def test_labels(self, client, test_item):
        assert test_item.listing_type_label == 'I want to sell'
        assert test_item.price_type_label == 'Negotiable'

    def test_contact_url(self, client, test_item):
        """The WhatsApp link targets the seller and names the listing"""
        url = test_item.contact_url
        assert url.startswith('https://wa.me/919876543210?text=')
        assert 'Test Item' in unquote(url.split('text=', 1)[1])

    def test_contact_url_without_number(self, client, other_item):
        """Sellers without a number have no contact link"""
        assert other_item.contact_url is None
