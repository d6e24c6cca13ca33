import logging

from flask import jsonify, request

from app import db, limiter
from app.models import Fixture, Prediction, User
from app.routes.admin import bp
from app.utils.auth import trigger_auth_required
from app.utils.cache_utils import invalidate_model_cache

logger = logging.getLogger(__name__)


@bp.route("/calculate-scores", methods=["GET"])
@trigger_auth_required
def scoring_stats():
    """Scored vs unscored prediction statistics"""
    try:
        stats = Prediction.get_scoring_stats()
        submitted = stats["submitted_predictions"]
        stats["scoring_progress"] = (
            round(stats["scored_predictions"] / submitted * 100, 1) if submitted else 0.0
        )
        return jsonify({"success": True, "stats": stats})
    except Exception as e:
        logger.error(f"Error getting scoring stats: {e}", exc_info=True)
        return jsonify({"success": False, "error": "Failed to get scoring statistics"}), 500


@bp.route("/calculate-scores", methods=["POST"])
@limiter.limit("10 per minute")
@trigger_auth_required
def calculate_scores():
    """Score one finished fixture (``?fixture_id=``) or every pending one"""
    fixture_id = request.args.get("fixture_id", type=int)

    try:
        if fixture_id is not None:
            fixture = db.session.get(Fixture, fixture_id)
            if not fixture:
                return jsonify({"success": False, "error": "Fixture not found"}), 404
            if not fixture.has_final_score:
                return (
                    jsonify(
                        {
                            "success": False,
                            "error": "Fixture is not finished or has no final score",
                        }
                    ),
                    400,
                )

            count, user_ids = Prediction.recalculate_for_fixture(fixture_id, commit=False)
            db.session.flush()
            User.recalculate_stats_for(user_ids)
            db.session.commit()
            invalidate_model_cache("Fixture")

            predictions = Prediction.query.filter_by(
                fixture_id=fixture_id, is_submitted=True
            ).all()
            return jsonify(
                {
                    "success": True,
                    "message": f"Calculated scores for {count} predictions",
                    "fixture": fixture_id,
                    "results": [
                        {
                            "prediction_id": p.id,
                            "points": p.points,
                            "category": p.category,
                            "correct": p.is_correct,
                        }
                        for p in predictions
                    ],
                }
            )

        stats = Prediction.calculate_all_pending()
        invalidate_model_cache("Fixture")
        return jsonify(
            {
                "success": True,
                "message": (
                    f"Calculated scores for {stats['total_scores']} predictions across "
                    f"{stats['processed_fixtures']} fixtures"
                ),
                "stats": stats,
            }
        )

    except Exception as e:
        db.session.rollback()
        logger.error(f"Error calculating scores: {e}", exc_info=True)
        return jsonify({"success": False, "error": str(e)}), 500


@bp.route("/reset-scores", methods=["POST"])
@limiter.limit("5 per minute")
@trigger_auth_required
def reset_scores():
    """Clear prediction points and zero every user's aggregates"""
    try:
        predictions_reset = Prediction.reset_all()
        users = User.query.all()
        for user in users:
            user.reset_stats()
        db.session.commit()
        invalidate_model_cache("Fixture")

        logger.info(
            f"Reset scores: {predictions_reset} predictions, {len(users)} users"
        )
        return jsonify(
            {
                "success": True,
                "message": "Scores reset",
                "predictions_reset": predictions_reset,
                "users_reset": len(users),
            }
        )
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error resetting scores: {e}", exc_info=True)
        return jsonify({"success": False, "error": str(e)}), 500
