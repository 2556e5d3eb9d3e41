import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ("accounts", "0001_initial"),
        ("events", "0001_initial"),
    ]

    operations = [
        migrations.AddField(
            model_name="boxofficeuser",
            name="venue",
            field=models.ForeignKey(
                blank=True,
                help_text="Venue this role is scoped to. Empty means all venues.",
                null=True,
                on_delete=django.db.models.deletion.SET_NULL,
                related_name="staff",
                to="events.venue",
            ),
        ),
    ]
