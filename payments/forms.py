from django import forms

from .models import PaymentOrder


class CreateBarcodeOrderForm(forms.Form):
    """Optional and string fields of a create request; ``amount`` is checked by the service."""

    client_order_id = forms.CharField(max_length=64)
    callback_url = forms.URLField(required=False, max_length=200)
    store_type = forms.ChoiceField(choices=PaymentOrder.StoreType.choices, required=False)
    product_info = forms.CharField(required=False, max_length=1000)
    internal_order_id = forms.CharField(required=False, max_length=64)

    def clean_client_order_id(self):
        value = self.cleaned_data["client_order_id"].strip()
        if not value:
            raise forms.ValidationError("client_order_id must not be blank")
        return value


class OrderListForm(forms.Form):
    status = forms.ChoiceField(choices=PaymentOrder.Status.choices, required=False)
    page = forms.IntegerField(required=False, min_value=1)
    limit = forms.IntegerField(required=False, min_value=1, max_value=100)
