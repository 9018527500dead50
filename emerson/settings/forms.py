from flask_wtf import FlaskForm
from wtforms import PasswordField, SelectField, SubmitField
from wtforms.validators import InputRequired, Length, Optional

from api_handler import MODELS


def _model_choices():
    return [(model_id, info.name) for model_id, info in MODELS.items()]


class SettingsForm(FlaskForm):
    api_key = PasswordField(
        "OpenRouter API key",
        validators=[Optional(), Length(max=200)],
        description="Leave blank to keep the current key.",
    )
    analysis_model = SelectField("Analysis model", choices=_model_choices(), validators=[InputRequired()])
    writing_model = SelectField("Writing model", choices=_model_choices(), validators=[InputRequired()])
    brainstorm_model = SelectField("Brainstorm model", choices=_model_choices(), validators=[InputRequired()])
    submit = SubmitField("Save settings")
