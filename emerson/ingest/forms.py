from flask_wtf import FlaskForm
from wtforms import HiddenField, MultipleFileField, RadioField, StringField, SubmitField, TextAreaField
from wtforms.validators import InputRequired, Length, Optional


class UploadForm(FlaskForm):
    files = MultipleFileField("Manuscript files", render_kw={"webkitdirectory": True, "multiple": True})
    submit = SubmitField("I have files")
    start_fresh = SubmitField("Starting fresh")


class AnswerForm(FlaskForm):
    question_id = HiddenField(validators=[InputRequired()])
    choice = RadioField("Choose one", choices=[], validators=[Optional()], validate_choice=False)
    answer = TextAreaField("Your answer", validators=[Optional(), Length(max=2000)])
    submit = SubmitField("Answer")

    def answer_text(self) -> str:
        return (self.answer.data or "").strip() or (self.choice.data or "").strip()


class ProjectNameForm(FlaskForm):
    name = StringField("Project name", validators=[InputRequired(), Length(max=150)])
    submit = SubmitField("Create project")
