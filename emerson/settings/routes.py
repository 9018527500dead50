from flask import flash, redirect, render_template, url_for

from ..extensions import db
from ..services.app_settings import (
    API_KEY_SETTING,
    MODEL_PREFERENCES_SETTING,
    get_api_key,
    get_model_preferences,
    set_setting,
)
from ..services.gateway import reset_model_gateway
from . import bp
from .forms import SettingsForm


@bp.route("/", methods=["GET", "POST"])
def index():
    preferences = get_model_preferences()
    form = SettingsForm(
        analysis_model=preferences["analysis"],
        writing_model=preferences["writing"],
        brainstorm_model=preferences["brainstorm"],
    )

    if form.validate_on_submit():
        api_key = (form.api_key.data or "").strip()
        if api_key:
            set_setting(API_KEY_SETTING, api_key)
        set_setting(
            MODEL_PREFERENCES_SETTING,
            {
                "analysis": form.analysis_model.data,
                "writing": form.writing_model.data,
                "brainstorm": form.brainstorm_model.data,
            },
        )
        db.session.commit()
        reset_model_gateway()
        flash("Settings saved.", "success")
        return redirect(url_for("settings.index"))

    return render_template("settings/index.html", form=form, has_api_key=bool(get_api_key()))
