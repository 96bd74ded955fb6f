# Generated manually. Patient address, printed on the delivery document.

from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ('dispatchman', '0001_initial'),
    ]

    operations = [
        migrations.AddField(
            model_name='patient',
            name='address',
            field=models.CharField(blank=True, default='', max_length=255, verbose_name='Direccion'),
        ),
    ]
