# FILE: tests/test_archive_index.py

import itertools
import zipfile

import pytest

from conftest import make_zip
from manga_viewer.errors import CorruptArchiveError
from manga_viewer.services.archive_index import (
    content_type_for,
    index_archive,
    is_noise_entry,
    is_page_entry,
    natural_compare,
    sort_page_names,
)

NAMES = [
    "page10.jpg", "page2.jpg", "page1.jpg", "page.jpg", "Page3.png",
    "p007.jpg", "p7.jpg", "vol1/ch2/001.png", "vol1/ch10/001.png",
    "a-1.jpg", "a_1.jpg", "a1.jpg", "10.jpg", "9.jpg", "z.webp",
]


def test_numeric_runs_compare_by_value():
    """page2 sorts before page10"""
    ordered = sort_page_names(["page10.jpg", "page2.jpg", "page1.jpg"])
    assert ordered == ["page1.jpg", "page2.jpg", "page10.jpg"]


@pytest.mark.parametrize("i,j", [(1, 2), (2, 10), (9, 10), (99, 100), (0, 1000)])
def test_prefix_with_smaller_number_sorts_first(i, j):
    assert natural_compare(f"page{i}.jpg", f"page{j}.jpg") < 0
    assert natural_compare(f"page{j}.jpg", f"page{i}.jpg") > 0


def test_missing_runs_sort_first():
    """A name that runs out of runs sorts before a longer one"""
    assert natural_compare("page", "page1") < 0
    assert natural_compare("ch1", "ch1a") < 0


def test_nested_paths_sorted_naturally():
    ordered = sort_page_names(["vol1/ch10/001.png", "vol1/ch2/001.png", "vol1/ch2/010.png"])
    assert ordered == ["vol1/ch2/001.png", "vol1/ch2/010.png", "vol1/ch10/001.png"]


def test_comparison_is_a_total_order():
    for a in NAMES:
        assert natural_compare(a, a) == 0

    for a, b in itertools.permutations(NAMES, 2):
        assert natural_compare(a, b) == -natural_compare(b, a)
        assert natural_compare(a, b) != 0

    for a, b, c in itertools.permutations(NAMES, 3):
        if natural_compare(a, b) < 0 and natural_compare(b, c) < 0:
            assert natural_compare(a, c) < 0


def test_leading_zero_ties_do_not_depend_on_input_order():
    names = ["p007.jpg", "p7.jpg", "p07.jpg"]
    assert sort_page_names(names) == sort_page_names(list(reversed(names)))


def test_sorting_is_idempotent():
    once = sort_page_names(NAMES)
    assert sort_page_names(once) == once


@pytest.mark.parametrize("name", [
    "__MACOSX/page1.jpg",
    "__MACOSX/vol/._page1.jpg",
    "vol/._page1.jpg",
    "._page1.jpg",
    ".DS_Store",
    "vol/.DS_Store",
    "__MACOSX\\page1.jpg",
])
def test_noise_entries_excluded(name):
    assert is_noise_entry(name)
    assert not is_page_entry(name)


@pytest.mark.parametrize("name", ["notes.txt", "ComicInfo.xml", "jpg", "page", "archive.zip", ".jpg"])
def test_non_image_entries_excluded(name):
    assert not is_page_entry(name)


@pytest.mark.parametrize("name", ["PAGE.JPG", "a.jpeg", "b.png", "c.GIF", "d.bmp", "e.webp", "dir\\f.png"])
def test_supported_extensions_included(name):
    assert is_page_entry(name)


def test_content_types():
    assert content_type_for("PAGE.JPG") == "image/jpeg"
    assert content_type_for("a.jpeg") == "image/jpeg"
    assert content_type_for("a.png") == "image/png"
    assert content_type_for("a.gif") == "image/gif"
    assert content_type_for("a.bmp") == "image/bmp"
    assert content_type_for("a.WEBP") == "image/webp"
    assert content_type_for("a.unknown") == "image/jpeg"


def test_index_orders_pages_and_reads_selected_entry():
    data = make_zip([("3.jpg", b"three"), ("1.jpg", b"one"), ("2.jpg", b"two")])

    with index_archive(data) as index:
        assert index.page_filenames == ["1.jpg", "2.jpg", "3.jpg"]
        assert len(index) == 3
        assert index.read_page(0) == b"one"
        assert index.read_page(2) == b"three"
        assert index.pages[0].content_type == "image/jpeg"


def test_index_drops_directories_noise_and_strips_paths():
    data = make_zip([
        ("vol1/", b""),
        ("vol1/002.png", b"p2"),
        ("vol1/001.png", b"p1"),
        ("__MACOSX/vol1/._001.png", b"junk"),
        ("vol1/.DS_Store", b"junk"),
        ("vol1/notes.txt", b"hello"),
    ])

    with index_archive(data) as index:
        assert index.member_names == ["vol1/001.png", "vol1/002.png"]
        assert index.page_filenames == ["001.png", "002.png"]


def test_index_independent_of_archive_order():
    entries = [(f"img{i}.png", str(i).encode()) for i in (12, 1, 7, 100, 3)]
    first = index_archive(make_zip(entries))
    second = index_archive(make_zip(list(reversed(entries))))

    assert first.member_names == second.member_names
    assert first.page_filenames == ["img1.png", "img3.png", "img7.png", "img12.png", "img100.png"]


def test_indexing_same_bytes_twice_is_identical(sample_archive):
    assert index_archive(sample_archive).page_filenames == index_archive(sample_archive).page_filenames


def test_archive_without_images_has_no_pages():
    index = index_archive(make_zip([("readme.txt", b"hi")]))
    assert len(index) == 0
    assert index.page_filenames == []


def test_not_a_zip_raises_corrupt_archive():
    with pytest.raises(CorruptArchiveError):
        index_archive(b"this is not a zip file")


def test_only_selected_entry_is_decompressed():
    """A damaged neighbour does not affect reading the selected page"""
    data = bytearray(make_zip(
        [("1.jpg", b"A" * 100), ("2.jpg", b"B" * 100)],
        compression=zipfile.ZIP_STORED,
    ))
    pos = data.find(b"B" * 100)
    data[pos:pos + 100] = b"C" * 100

    with index_archive(bytes(data)) as index:
        assert index.read_page(0) == b"A" * 100
        with pytest.raises(CorruptArchiveError):
            index.read_page(1)


def test_very_long_digit_runs_sort_by_value():
    huge = "p" + "1" * 5000 + ".jpg"
    padded = "p" + "0" * 10 + "2.jpg"

    assert sort_page_names([huge, "p10.jpg", padded]) == [padded, "p10.jpg", huge]

    data = make_zip([(huge, b"big"), ("a1.jpg", b"a")])
    with index_archive(data) as index:
        assert index.member_names == ["a1.jpg", huge]
        assert index.read_page(1) == b"big"


def test_bare_extension_name_is_not_a_page():
    assert not is_page_entry(".jpg")
    assert not is_page_entry("vol1/.png")


def test_non_digit_runs_compare_by_code_point():
    assert sort_page_names(["a.jpg", "B.jpg"]) == ["B.jpg", "a.jpg"]
