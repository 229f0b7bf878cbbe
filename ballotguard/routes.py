# ballotguard/routes.py

# HTTP surface: parses requests, calls the core services, formats responses.

from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import jwt_required, set_access_cookies, unset_jwt_cookies
from werkzeug.exceptions import HTTPException

from ballotguard import db, limiter
from ballotguard.audit.audit_logger import RequestContext
from ballotguard.database.models import User, Vote
from ballotguard.errors import InvalidOrExpiredLink, InvalidOrExpiredToken, VotingError
from ballotguard.operations.health_monitor import health_report

api = Blueprint('api', __name__)


def services():
    return current_app.extensions['ballotguard']


def request_context():
    return RequestContext(
        ip_address=request.remote_addr,
        user_agent=request.headers.get('User-Agent'),
    )


def json_body():
    return request.get_json(silent=True)


def ok(data, status=200, **extra):
    return jsonify({'success': True, 'data': data, **extra}), status


@api.app_errorhandler(VotingError)
def handle_voting_error(e):
    return jsonify({'success': False, 'error': e.message}), e.status_code


@api.app_errorhandler(Exception)
def handle_unexpected_error(e):
    if isinstance(e, HTTPException):
        return e
    current_app.logger.exception("Unhandled error")
    db.session.rollback()
    return jsonify({'success': False, 'error': 'Internal server error'}), 500


@api.route('/health')
def health():
    report = health_report(services().store)
    return jsonify(report), 200 if report['ok'] else 503


# -- Auth ---------------------------------------------------------------------

@api.route('/api/v1/auth/register', methods=['POST'])
@limiter.limit("10/hour")
def register():
    svc = services()
    req = svc.validator.parse_register(json_body())
    svc.accounts.register(req.email, req.password)
    return ok('Verification email sent')


@api.route('/api/v1/auth/verify/<token>')
def verify_email(token):
    svc = services()
    if not svc.validator.validate_token(token):
        raise InvalidOrExpiredToken()
    svc.accounts.verify_email(token)
    return jsonify({'success': True, 'message': 'Email verified successfully'}), 200


@api.route('/api/v1/auth/login', methods=['POST'])
@limiter.limit("20/hour")
def login():
    svc = services()
    req = svc.validator.parse_login(json_body())
    mfa_token = svc.mfa.login(req.email, req.password, ip_address=request.remote_addr)
    return jsonify({'success': True, 'mfaToken': mfa_token}), 200


@api.route('/api/v1/auth/verify-mfa', methods=['POST'])
@limiter.limit("30/hour")
def verify_mfa():
    svc = services()
    req = svc.validator.parse_verify_mfa(json_body())
    user, token = svc.mfa.verify(req.mfa_token, req.mfa_code)
    svc.audit_logger.record('MFA verified', user.id, request_context())
    resp = jsonify({'success': True, 'token': token})
    set_access_cookies(resp, token)
    return resp, 200


@api.route('/api/v1/auth/me')
@jwt_required()
def me():
    svc = services()
    user = db.session.get(User, svc.token_manager.get_identity())
    if user is None:
        return jsonify({'success': False, 'error': 'User not found'}), 404
    profile = user.profile.to_dict() if user.profile else None
    return ok({'user': user.to_dict(), 'profile': profile})


@api.route('/api/v1/auth/logout')
def logout():
    resp = jsonify({'success': True, 'data': {}})
    unset_jwt_cookies(resp)
    return resp, 200


@api.route('/api/v1/auth/forgotpassword', methods=['POST'])
@limiter.limit("5/hour")
def forgot_password():
    svc = services()
    req = svc.validator.parse_forgot_password(json_body())
    svc.accounts.forgot_password(req.email)
    return ok('If the account exists, a reset email has been sent')


@api.route('/api/v1/auth/resetpassword/<token>', methods=['PUT'])
def reset_password(token):
    svc = services()
    if not svc.validator.validate_token(token):
        raise InvalidOrExpiredToken()
    req = svc.validator.parse_reset_password(json_body())
    svc.accounts.reset_password(token, req.password)
    return jsonify({'success': True}), 200


# -- Votes --------------------------------------------------------------------

@api.route('/api/v1/votes/generate-link', methods=['POST'])
@jwt_required()
@limiter.limit("10/hour")
def generate_voting_link():
    svc = services()
    req = svc.validator.parse_generate_link(json_body())
    link_base = request.host_url.rstrip('/') + '/api/v1/votes/cast'
    svc.link_issuer.issue(
        svc.token_manager.get_identity(), req.election_id, request_context(), link_base
    )
    ttl = current_app.config['VOTING_TOKEN_TTL_SECONDS']
    return ok({'message': 'Voting link sent to your email', 'expiresIn': f'{ttl // 60} minutes'})


@api.route('/api/v1/votes/cast/<token>', methods=['POST'])
@jwt_required()
def cast_vote(token):
    svc = services()
    if not svc.validator.validate_token(token):
        raise InvalidOrExpiredLink()
    req = svc.validator.parse_cast_vote(json_body())
    receipt = svc.casting.cast_vote(
        token,
        svc.token_manager.get_identity(),
        req.candidate_id,
        face_image=req.face_image,
        context=request_context(),
    )
    return ok({'vote': receipt, 'message': 'Vote successfully cast'}, status=201)


@api.route('/api/v1/votes/my-votes')
@jwt_required()
def my_votes():
    svc = services()
    votes = db.session.query(Vote).filter_by(voter_id=svc.token_manager.get_identity()) \
        .order_by(Vote.timestamp.desc()).all()
    return ok([v.to_history_entry() for v in votes], count=len(votes))
