from datetime import datetime
from photo_sorter.metadata.resolver import (SOURCE_EXIF, SOURCE_MEDIA, SOURCE_MTIME, SOURCE_SUPPLEMENTAL,
                                            IdentityResolver)
from photo_sorter.metadata.supplemental import PLATFORM_GOOGLE
from photo_sorter.models import MediaFileInfo, SupplementalInfo

MTIME = datetime(2020, 2, 2, 2, 2, 2)

def _info(name="a.jpg", true_type="jpeg", mtime=MTIME):
    return MediaFileInfo(orig_path=name, ext=".jpg", true_type=true_type, size_bytes=1, mtime=mtime)

def test_embedded_time_wins_over_sidecar_and_mtime():
    supp = SupplementalInfo(platform=PLATFORM_GOOGLE, photo_taken_time=datetime(2019, 1, 1))
    dt, source = IdentityResolver.resolve_datetime(datetime(2024, 5, 1, 10, 0, 0, 750000), supp, MTIME)
    assert dt == datetime(2024, 5, 1, 10, 0, 0)
    assert source == SOURCE_EXIF

def test_sidecar_taken_time_then_creation_time():
    supp = SupplementalInfo(platform=PLATFORM_GOOGLE, creation_time=datetime(2019, 6, 6))
    assert IdentityResolver.resolve_datetime(None, supp, MTIME) == (datetime(2019, 6, 6), SOURCE_SUPPLEMENTAL)

    supp.photo_taken_time = datetime(2018, 3, 3)
    assert IdentityResolver.resolve_datetime(None, supp, MTIME) == (datetime(2018, 3, 3), SOURCE_SUPPLEMENTAL)

def test_mtime_is_last_resort():
    assert IdentityResolver.resolve_datetime(None, None, MTIME) == (MTIME, SOURCE_MTIME)
    assert IdentityResolver.resolve_datetime(None, None, None) == (None, None)

def test_video_embedded_source_is_media():
    derived = IdentityResolver().resolve(_info("v.mp4", "mp4"), b"video", datetime(2023, 1, 1))
    assert derived.datetime_source == SOURCE_MEDIA
    assert derived.ext == ".mp4"

def test_sequence_per_second_by_distinct_checksum():
    resolver = IdentityResolver()
    when = datetime(2024, 5, 1, 10, 0, 0)

    a = resolver.resolve(_info("a.jpg"), b"content-a", when)
    b = resolver.resolve(_info("b.jpg"), b"content-b", when)
    a_again = resolver.resolve(_info("a_copy.jpg"), b"content-a", when)
    other_second = resolver.resolve(_info("c.jpg"), b"content-c", datetime(2024, 5, 1, 10, 0, 1))

    assert (a.sequence, b.sequence, a_again.sequence) == (0, 1, 0)
    assert other_second.sequence == 0
    assert a.checksum == a_again.checksum
    assert a.checksum != b.checksum

def test_undated_item():
    derived = IdentityResolver().resolve(_info(mtime=None), b"no dates anywhere")
    assert derived.capture_datetime is None
    assert derived.datetime_source is None
    assert len(derived.short_checksum) == 7
