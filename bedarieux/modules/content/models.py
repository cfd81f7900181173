"""
Content Models
==============

Read-side view of the site's events, places and posts. The tables are owned
by the rest of the site; the newsletter only reads the columns its email
template shows.
"""

from ...core.database import db, new_id, utcnow, isoformat


class Event(db.Model):
    __tablename__ = 'events'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    title = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(200), unique=True, nullable=False)
    summary = db.Column(db.Text)
    description = db.Column(db.Text)
    start_date = db.Column(db.DateTime, nullable=False)
    end_date = db.Column(db.DateTime)
    is_all_day = db.Column(db.Boolean, default=False)
    location_name = db.Column(db.String(200))
    location_address = db.Column(db.String(300))
    location_city = db.Column(db.String(120))
    cover_image = db.Column(db.String(500))
    category = db.Column(db.String(80))
    is_published = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=utcnow)

    @property
    def path(self):
        return f'/events/{self.slug}'

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'slug': self.slug,
            'url': self.path,
            'summary': self.summary,
            'description': self.description,
            'startDate': isoformat(self.start_date),
            'endDate': isoformat(self.end_date),
            'isAllDay': self.is_all_day,
            'locationName': self.location_name,
            'locationAddress': self.location_address,
            'locationCity': self.location_city,
            'coverImage': self.cover_image,
            'category': self.category,
        }


class Place(db.Model):
    __tablename__ = 'places'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(200), unique=True, nullable=False)
    type = db.Column(db.String(50))
    summary = db.Column(db.Text)
    description = db.Column(db.Text)
    street = db.Column(db.String(200))
    city = db.Column(db.String(120))
    phone = db.Column(db.String(40))
    website = db.Column(db.String(300))
    logo = db.Column(db.String(500))
    cover_image = db.Column(db.String(500))
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=utcnow)

    @property
    def path(self):
        return f'/places/{self.slug}'

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'slug': self.slug,
            'url': self.path,
            'type': self.type,
            'summary': self.summary,
            'street': self.street,
            'city': self.city,
            'phone': self.phone,
            'website': self.website,
            'logo': self.logo,
            'coverImage': self.cover_image,
        }


class Post(db.Model):
    __tablename__ = 'posts'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    title = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(200), unique=True, nullable=False)
    excerpt = db.Column(db.Text)
    cover_image = db.Column(db.String(500))
    author_name = db.Column(db.String(120))
    published_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=utcnow)

    @property
    def path(self):
        return f'/posts/{self.slug}'

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'slug': self.slug,
            'url': self.path,
            'excerpt': self.excerpt,
            'coverImage': self.cover_image,
            'author': {'name': self.author_name} if self.author_name else None,
            'publishedAt': isoformat(self.published_at),
        }
