"""
Storage path derivation tests.
"""

import hashlib
from datetime import datetime, timedelta, timezone

from image_mirror.cache_keys import date_prefix, derive_storage_path, short_hash
from image_mirror.config import MirrorSettings
from image_mirror.validator import canonical_url, is_acceptable

URL = "https://cdn.discordapp.com/attachments/111/222/photo.png"
DAY = datetime(2025, 3, 14, 9, 0, tzinfo=timezone.utc)


class TestShortHash:

    def test_is_sha256_prefix_of_stripped_url(self):
        expected = hashlib.sha256(URL.encode("utf-8")).hexdigest()[:8]
        assert short_hash(URL + "?ex=1&is=2&hm=3") == expected

    def test_length_and_charset(self):
        value = short_hash(URL)
        assert len(value) == 8
        assert all(c in "0123456789abcdef" for c in value)

    def test_host_case_and_default_port_converge(self):
        settings = MirrorSettings(storage_backend="memory")
        spellings = [
            "https://CDN.DISCORDAPP.COM/attachments/111/222/photo.png?ex=1",
            "https://cdn.discordapp.com:443/attachments/111/222/photo.png",
            "HTTPS://Cdn.DiscordApp.com:443/attachments/111/222/photo.png?hm=2",
        ]
        for url in spellings:
            assert is_acceptable(url, settings)
            assert short_hash(url) == short_hash(URL)

    def test_canonical_form(self):
        assert canonical_url("https://CDN.discordapp.com:443/attachments/1/2/A.png?ex=1") == \
            "https://cdn.discordapp.com/attachments/1/2/A.png"
        assert canonical_url("not a url") == "not a url"

    def test_non_default_port_kept(self):
        assert short_hash("https://cdn.discordapp.com:8443/attachments/111/222/photo.png") != short_hash(URL)

    def test_path_case_matters(self):
        assert short_hash(URL.replace("photo.png", "Photo.png")) != short_hash(URL)

    def test_distinct_images_differ(self):
        other = "https://cdn.discordapp.com/attachments/111/223/photo.png"
        assert short_hash(URL) != short_hash(other)


class TestDatePrefix:

    def test_formats_eight_digits(self):
        assert date_prefix(datetime(2025, 1, 5, tzinfo=timezone.utc)) == "20250105"

    def test_naive_taken_as_utc(self):
        assert date_prefix(datetime(2025, 12, 31, 23, 59)) == "20251231"

    def test_aware_converted_to_utc(self):
        # 2025-03-14 20:00 at UTC-8 is 2025-03-15 04:00 UTC
        pacific = timezone(timedelta(hours=-8))
        assert date_prefix(datetime(2025, 3, 14, 20, 0, tzinfo=pacific)) == "20250315"


class TestDeriveStoragePath:

    def test_layout(self):
        path = derive_storage_path(URL, DAY, "PNG")
        assert path.key == f"20250314/{short_hash(URL)}.png"
        assert str(path) == path.key
        assert path.extension == "png"

    def test_stable_on_repeat(self):
        assert derive_storage_path(URL, DAY, "png") == derive_storage_path(URL, DAY, "png")

    def test_ignores_query_params(self):
        signed = derive_storage_path(URL + "?ex=1&is=2&hm=3", DAY, "png")
        resigned = derive_storage_path(URL + "?ex=9&is=8&hm=7&format=webp", DAY, "png")
        assert signed.key == resigned.key == derive_storage_path(URL, DAY, "png").key

    def test_same_day_different_times(self):
        later = DAY.replace(hour=23, minute=59)
        assert derive_storage_path(URL, DAY, "png") == derive_storage_path(URL, later, "png")

    def test_differs_across_days(self):
        today = derive_storage_path(URL, DAY, "png")
        tomorrow = derive_storage_path(URL, DAY + timedelta(days=1), "png")
        assert today.short_hash == tomorrow.short_hash
        assert today.date_prefix != tomorrow.date_prefix
        assert today.key != tomorrow.key
