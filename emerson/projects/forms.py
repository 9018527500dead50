from flask_wtf import FlaskForm
from wtforms import SelectField, SubmitField
from wtforms.validators import InputRequired


class CodexMergeForm(FlaskForm):
    keep_id = SelectField("Keep", choices=[], validators=[InputRequired()])
    merge_id = SelectField("Merge into it", choices=[], validators=[InputRequired()])
    submit = SubmitField("Merge entries")

    def set_entries(self, entries) -> None:
        choices = [(entry.id, f"{entry.name} ({entry.type})") for entry in entries]
        self.keep_id.choices = choices
        self.merge_id.choices = choices


class DeleteProjectForm(FlaskForm):
    submit = SubmitField("Delete project")
