from django.db import migrations, models

LEDGERS = [
    ("cellulardevicetransaction", "device", "cellular_txn_device_sequence_uniq"),
    ("serialdevicetransaction", "device", "serial_txn_device_sequence_uniq"),
    ("parttransaction", "part", "part_txn_part_sequence_uniq"),
    ("accessorytransaction", "accessory", "accessory_txn_accessory_sequence_uniq"),
]


def number_existing_rows(apps, schema_editor):
    for model_name, owner_field, _ in LEDGERS:
        model = apps.get_model("inventory", model_name)
        counters = {}
        for row in model.objects.order_by(f"{owner_field}_id", "created_at", "id").only("id", f"{owner_field}_id"):
            owner_id = getattr(row, f"{owner_field}_id")
            counters[owner_id] = counters.get(owner_id, 0) + 1
            model.objects.filter(pk=row.pk).update(sequence=counters[owner_id])


class Migration(migrations.Migration):

    dependencies = [
        ("inventory", "0002_device_supplier"),
    ]

    operations = [
        *[
            migrations.AddField(
                model_name=model_name,
                name="sequence",
                field=models.PositiveIntegerField(default=0, editable=False),
                preserve_default=False,
            )
            for model_name, _, _ in LEDGERS
        ],
        migrations.RunPython(number_existing_rows, migrations.RunPython.noop),
        *[
            migrations.AlterModelOptions(
                name=model_name,
                options={"ordering": ["-created_at", "-sequence"]},
            )
            for model_name, _, _ in LEDGERS
        ],
        *[
            migrations.AddConstraint(
                model_name=model_name,
                constraint=models.UniqueConstraint(fields=[owner_field, "sequence"], name=constraint_name),
            )
            for model_name, owner_field, constraint_name in LEDGERS
        ],
    ]
