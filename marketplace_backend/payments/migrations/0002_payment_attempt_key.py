import uuid

from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ("payments", "0001_initial"),
    ]

    operations = [
        migrations.AddField(
            model_name="payment",
            name="attempt_key",
            field=models.UUIDField(
                default=uuid.uuid4,
                editable=False,
                help_text="Per-attempt provider key (YooKassa Idempotence-Key, Robokassa InvId source)",
            ),
        ),
    ]
