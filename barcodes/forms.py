from django import forms


class BarcodeOptionsForm(forms.Form):
    """Render options accepted by the barcode endpoints (query string or JSON)."""

    width = forms.IntegerField(required=False, min_value=60, max_value=2000)
    height = forms.IntegerField(required=False, min_value=20, max_value=1000)
    bar_height = forms.IntegerField(required=False, min_value=5, max_value=1000)
    font_size = forms.IntegerField(required=False, min_value=6, max_value=72)
    quiet_zone = forms.IntegerField(required=False, min_value=0, max_value=200)
    show_text = forms.NullBooleanField(required=False)

    def clean(self):
        cleaned = super().clean()
        width = cleaned.get("width") or 300
        quiet_zone = cleaned.get("quiet_zone")
        if quiet_zone is not None and quiet_zone * 2 >= width:
            raise forms.ValidationError("quiet_zone leaves no room for bars")
        height = cleaned.get("height") or 80
        bar_height = cleaned.get("bar_height")
        if bar_height is not None and bar_height > height:
            raise forms.ValidationError("bar_height cannot exceed height")
        return cleaned

    def render_options(self) -> dict:
        """Only the options the caller actually set, so encoder defaults apply."""
        options = {k: v for k, v in self.cleaned_data.items() if v is not None}
        if "height" in options and "bar_height" not in options:
            options["bar_height"] = max(5, options["height"] - 20)
        return options


class MultiBarcodeOptionsForm(BarcodeOptionsForm):
    segment_spacing = forms.IntegerField(required=False, min_value=0, max_value=200)
    label_spacing = forms.IntegerField(required=False, min_value=0, max_value=200)
    show_segment_labels = forms.NullBooleanField(required=False)
