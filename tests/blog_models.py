"""Models shared by the test modules."""

from palmrecord.models import (
    Model,
    BooleanField,
    CharField,
    DateTimeField,
    FloatField,
    IntegerField,
    TextField,
    belongs_to,
    has_many,
    has_one,
)


class User(Model):
    table = "users"

    name = CharField(max_length=100)
    email = CharField(null=True)
    age = IntegerField(null=True)
    active = BooleanField(default=True)

    posts = has_many("Post", "user_id")
    profile = has_one("Profile", "user_id")

    class Meta:
        timestamps = True


class Post(Model):
    table = "posts"

    user_id = IntegerField(null=True)
    title = CharField()
    views = IntegerField(default=0)
    published_at = DateTimeField(null=True)

    author = belongs_to("User", "user_id")


class Profile(Model):
    table = "profiles"

    user_id = IntegerField()
    bio = TextField(null=True)

    user = belongs_to(User, "user_id")


class Product(Model):
    table = "products"

    name = CharField()
    price = FloatField(null=True)
    category = CharField(null=True)


class Ticket(Model):
    """Columns named after SQL keywords."""

    table = "tickets"

    case = IntegerField(null=True)
    distinct = CharField(null=True)


class Vendor(Model):
    table = "vendors"

    name = CharField(null=True)

    listings = has_many("Listing", "vendor_id")


class Listing(Model):
    """``vendor_id`` is a TEXT column holding integer keys."""

    table = "listings"

    vendor_id = CharField(null=True)
    label = CharField(null=True)

    vendor = belongs_to("Vendor", "vendor_id")
