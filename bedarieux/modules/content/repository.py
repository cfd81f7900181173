from .models import Event, Place, Post


class ContentRepository:
    """Fetches the events, places and posts a campaign includes"""

    def __init__(self, session):
        self.session = session

    def _by_ids(self, model, ids):
        if not ids:
            return []
        rows = self.session.query(model).filter(model.id.in_(ids)).all()
        # Keep the order the editor chose
        position = {content_id: i for i, content_id in enumerate(ids)}
        return sorted(rows, key=lambda row: position.get(row.id, len(position)))

    def events(self, ids):
        return self._by_ids(Event, ids)

    def places(self, ids):
        return self._by_ids(Place, ids)

    def posts(self, ids):
        return self._by_ids(Post, ids)

    def for_campaign(self, campaign):
        return {
            'events': self.events(campaign.included_events or []),
            'places': self.places(campaign.included_places or []),
            'posts': self.posts(campaign.included_posts or []),
        }

    def available(self, limit=50):
        """Content the campaign editor can pick from, most recent first"""
        events = (self.session.query(Event)
                  .filter(Event.is_published.is_(True))
                  .order_by(Event.start_date.desc())
                  .limit(limit).all())
        places = (self.session.query(Place)
                  .filter(Place.is_active.is_(True))
                  .order_by(Place.name.asc())
                  .limit(limit).all())
        posts = (self.session.query(Post)
                 .filter(Post.published_at.isnot(None))
                 .order_by(Post.published_at.desc())
                 .limit(limit).all())
        return {'events': events, 'places': places, 'posts': posts}
