from django.db import migrations

GRADE_DESCRIPTIONS = {
    "A": "Like new condition",
    "B": "Good condition with minor wear",
    "C": "Fair condition with noticeable wear",
    "D": "Poor condition with significant wear",
    "E": "Very poor condition",
    "F": "For parts only",
}


def seed_grades(apps, schema_editor):
    ProductGrade = apps.get_model("core", "ProductGrade")
    for grade, description in GRADE_DESCRIPTIONS.items():
        ProductGrade.objects.update_or_create(grade=grade, defaults={"description": description})


def remove_grades(apps, schema_editor):
    ProductGrade = apps.get_model("core", "ProductGrade")
    ProductGrade.objects.filter(grade__in=GRADE_DESCRIPTIONS).delete()


class Migration(migrations.Migration):

    dependencies = [
        ("core", "0001_initial"),
    ]

    operations = [
        migrations.RunPython(seed_grades, remove_grades),
    ]
