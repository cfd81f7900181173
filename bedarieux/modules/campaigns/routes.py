"""
Campaigns Routes
================

Admin API (admin, moderator or editor session required):
- GET/POST /campaigns -- list (paginated) and create
- GET/PUT/DELETE /campaigns/<id> -- detail, update, delete
- DELETE /campaigns/bulk-delete -- delete several campaigns
- POST /campaigns/<id>/archive -- archive a sent campaign
- POST /campaigns/<id>/send -- send to every eligible subscriber
- POST /campaigns/<id>/resend-failed -- retry the failed sends
- GET /campaigns/<id>/stats -- delivery, open and click statistics
- GET /campaigns/<id>/preview -- rendered HTML with a sample recipient
- POST /send-test-email -- transport check or campaign test copy
"""

import logging

from flask import request, jsonify, current_app, g, Response

from ...core.auth import admin_required
from ...core.database import db
from ...core.errors import NotFound, InvalidCampaignState, ValidationError, MailTransportError, PermissionDenied
from ...core.logging_service import db_log
from ..content.repository import ContentRepository
from ..email.email_service import email_service
from ..newsletter.repository import SubscriberRepository
from ..newsletter.validation import validate_lookup_email
from . import campaigns_bp
from .models import Campaign, CampaignAttachment, CAMPAIGN_STATUSES, DRAFT, SCHEDULED, SENT, ARCHIVED
from .renderer import render_preview
from .repository import CampaignRepository
from .sender import CampaignSender
from .stats import CampaignStats
from .validation import validate_campaign, validate_bulk_delete

logger = logging.getLogger(__name__)

# Editors may manage single drafts but not delete in bulk
BULK_DELETE_ROLES = ('admin', 'moderator')


def get_campaign_sender():
    config = current_app.config
    return CampaignSender(
        campaigns=CampaignRepository(db.session),
        subscribers=SubscriberRepository(db.session),
        content=ContentRepository(db.session),
        mailer=email_service,
        base_url=config['BASE_URL'],
        delay=config.get('NEWSLETTER_SEND_DELAY', 0),
        error_limit=config.get('NEWSLETTER_SUMMARY_ERROR_LIMIT', 5),
    )


def _get_or_404(repository, campaign_id):
    campaign = repository.get(campaign_id)
    if campaign is None:
        raise NotFound('Campaign not found')
    return campaign


def _apply(campaign, data, principal):
    """Copy validated fields onto the campaign, replacing attachments when given"""
    attachments = data.pop('attachments', None)
    for name, value in data.items():
        setattr(campaign, name, value)
    if attachments is not None:
        campaign.attachments = [
            CampaignAttachment(uploaded_by=principal.user_id, **attachment)
            for attachment in attachments
        ]


@campaigns_bp.route('/campaigns', methods=['GET'])
@admin_required
def list_campaigns():
    page = max(request.args.get('page', 1, type=int), 1)
    limit = min(max(request.args.get('limit', 10, type=int), 1), 100)
    status = request.args.get('status')
    if status and status not in CAMPAIGN_STATUSES:
        raise ValidationError('Invalid status filter', fields={'status': f"Must be one of {', '.join(CAMPAIGN_STATUSES)}"})

    campaigns, total = CampaignRepository(db.session).paginate(page=page, limit=limit, status=status)
    total_pages = (total + limit - 1) // limit
    return jsonify({
        'success': True,
        'campaigns': [campaign.to_dict(include_attachments=False) for campaign in campaigns],
        'pagination': {
            'page': page,
            'limit': limit,
            'totalCount': total,
            'totalPages': total_pages,
            'hasNextPage': page < total_pages,
            'hasPrevPage': page > 1,
        },
    }), 200


@campaigns_bp.route('/campaigns', methods=['POST'])
@admin_required
def create_campaign():
    data = validate_campaign(request.get_json(silent=True))
    campaign = Campaign(created_by_id=g.principal.user_id)
    _apply(campaign, data, g.principal)
    CampaignRepository(db.session).save(campaign)

    db_log('info', 'campaigns', f'Campaign created: {campaign.title}', {
        'campaign_id': campaign.id, 'status': campaign.status, 'created_by': g.principal.user_id,
    })
    message = 'Campaign scheduled' if campaign.status == SCHEDULED else 'Campaign created'
    return jsonify({'success': True, 'message': message, 'campaign': campaign.to_dict()}), 201


@campaigns_bp.route('/campaigns/<campaign_id>', methods=['GET'])
@admin_required
def get_campaign(campaign_id):
    campaign = _get_or_404(CampaignRepository(db.session), campaign_id)
    recipients = SubscriberRepository(db.session).count_recipients(campaign.preference_flag)
    return jsonify({
        'success': True,
        'campaign': campaign.to_dict(),
        'potentialRecipients': recipients,
    }), 200


@campaigns_bp.route('/campaigns/<campaign_id>', methods=['PUT'])
@admin_required
def update_campaign(campaign_id):
    repository = CampaignRepository(db.session)
    campaign = _get_or_404(repository, campaign_id)
    if not campaign.is_editable:
        raise InvalidCampaignState(f'Campaign cannot be modified (status: {campaign.status})')

    data = validate_campaign(request.get_json(silent=True), partial=True)
    _apply(campaign, data, g.principal)
    repository.save(campaign)

    db_log('info', 'campaigns', f'Campaign updated: {campaign.title}', {
        'campaign_id': campaign.id, 'fields': sorted(data), 'updated_by': g.principal.user_id,
    })
    return jsonify({'success': True, 'message': 'Campaign updated', 'campaign': campaign.to_dict()}), 200


@campaigns_bp.route('/campaigns/<campaign_id>', methods=['DELETE'])
@admin_required
def delete_campaign(campaign_id):
    repository = CampaignRepository(db.session)
    campaign = _get_or_404(repository, campaign_id)
    if campaign.status != DRAFT:
        raise InvalidCampaignState('Only draft campaigns can be deleted')

    title = campaign.title
    repository.delete(campaign)
    db_log('warning', 'campaigns', f'Campaign deleted: {title}', {
        'campaign_id': campaign_id, 'deleted_by': g.principal.user_id,
    })
    return jsonify({'success': True, 'message': 'Campaign deleted'}), 200


@campaigns_bp.route('/campaigns/bulk-delete', methods=['DELETE'])
@admin_required
def bulk_delete_campaigns():
    """Delete several drafts at once. force=true lets an admin delete any status."""
    if not g.principal.has_role(BULK_DELETE_ROLES):
        raise PermissionDenied()
    campaign_ids, force = validate_bulk_delete(request.get_json(silent=True))
    force = force and g.principal.role == 'admin'

    repository = CampaignRepository(db.session)
    campaigns = repository.get_many(campaign_ids)
    found = {campaign.id for campaign in campaigns}
    missing = [campaign_id for campaign_id in campaign_ids if campaign_id not in found]
    if missing:
        raise NotFound('Some campaigns do not exist', missingIds=missing)

    blocked = [campaign for campaign in campaigns if campaign.status != DRAFT and not force]
    if blocked:
        raise InvalidCampaignState('Some campaigns cannot be deleted', undeletableCampaigns=[
            {'id': campaign.id, 'title': campaign.title, 'status': campaign.status}
            for campaign in blocked
        ])

    deleted = [{'id': c.id, 'title': c.title, 'status': c.status} for c in campaigns]
    repository.delete_many(campaigns)
    db_log('warning', 'campaigns', f'{len(deleted)} campaigns deleted', {
        'campaign_ids': campaign_ids, 'force': force, 'deleted_by': g.principal.user_id,
    })
    return jsonify({
        'success': True,
        'message': f'{len(deleted)} campaign(s) deleted',
        'deletedCount': len(deleted),
        'deletedCampaigns': deleted,
    }), 200


@campaigns_bp.route('/campaigns/<campaign_id>/archive', methods=['POST'])
@admin_required
def archive_campaign(campaign_id):
    repository = CampaignRepository(db.session)
    campaign = _get_or_404(repository, campaign_id)
    if campaign.status != SENT:
        raise InvalidCampaignState('Only sent campaigns can be archived')

    repository.set_status(campaign, ARCHIVED)
    db_log('info', 'campaigns', f'Campaign archived: {campaign.title}', {'campaign_id': campaign.id})
    return jsonify({'success': True, 'message': 'Campaign archived', 'campaign': campaign.to_dict()}), 200


@campaigns_bp.route('/campaigns/<campaign_id>/send', methods=['POST'])
@admin_required
def send_campaign(campaign_id):
    """Send the campaign now. Runs the whole batch inside this request."""
    summary = get_campaign_sender().send(campaign_id, g.principal)
    if summary['errors']:
        message = f"Campaign sent to {summary['sent']} subscribers, {summary['errors']} failed"
    else:
        message = f"Campaign sent to {summary['sent']} subscribers"
    return jsonify({'success': True, 'message': message, **summary}), 200


@campaigns_bp.route('/campaigns/<campaign_id>/resend-failed', methods=['POST'])
@admin_required
def resend_failed(campaign_id):
    summary = get_campaign_sender().resend_failed(campaign_id, g.principal)
    return jsonify({
        'success': True,
        'message': f"{summary['sent']} of {summary['attempted']} failed sends delivered",
        **summary,
    }), 200


@campaigns_bp.route('/campaigns/<campaign_id>/stats', methods=['GET'])
@admin_required
def campaign_stats(campaign_id):
    repository = CampaignRepository(db.session)
    campaign = _get_or_404(repository, campaign_id)
    stats = CampaignStats(
        db.session,
        repository,
        error_limit=current_app.config.get('NEWSLETTER_STATS_ERROR_LIMIT', 10),
        activity_limit=current_app.config.get('NEWSLETTER_STATS_ACTIVITY_LIMIT', 20),
    )
    return jsonify({'success': True, **stats.for_campaign(campaign)}), 200


@campaigns_bp.route('/campaigns/<campaign_id>/preview', methods=['GET'])
@admin_required
def preview_campaign(campaign_id):
    campaign = _get_or_404(CampaignRepository(db.session), campaign_id)
    content = ContentRepository(db.session).for_campaign(campaign)
    html = render_preview(campaign, content, current_app.config['BASE_URL'])
    return Response(html, mimetype='text/html')


@campaigns_bp.route('/send-test-email', methods=['POST'])
@admin_required
def send_test_email():
    """Send a test email: a copy of a campaign when campaignId is given"""
    data = request.get_json(silent=True) or {}
    email = validate_lookup_email(data.get('email'))

    subject = None
    html_body = None
    campaign_id = data.get('campaignId')
    if campaign_id:
        if not isinstance(campaign_id, str):
            raise ValidationError('Invalid campaign id', fields={'campaignId': 'Invalid campaign id'})
        campaign = _get_or_404(CampaignRepository(db.session), campaign_id)
        content = ContentRepository(db.session).for_campaign(campaign)
        subject = f"[TEST] {campaign.subject}"
        html_body = render_preview(campaign, content, current_app.config['BASE_URL'])

    try:
        message_id = email_service.send_test_email(email, subject=subject, html_body=html_body)
    except MailTransportError as e:
        return jsonify({'success': False, 'error': f'Test email failed: {e}'}), 502

    logger.info(f"Test email sent to {email} by {g.principal.user_id}")
    return jsonify({
        'success': True,
        'message': 'Test email sent',
        'messageId': message_id,
        'development': email_service.provider == 'console',
    }), 200
