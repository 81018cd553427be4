import pytest

from healthsync.client.models import UploadSource
from healthsync.client.planner import choose_chunk_size, count_chunks, plan_chunks
from healthsync.client.validation import ensure_valid, validate_file
from healthsync.core import constants
from healthsync.core.exceptions import ErrorCode, FileValidationError
from healthsync.tests.conftest import sample_bytes

MIB = constants.MIB
KIB = constants.KIB


@pytest.mark.parametrize(
	"file_size, expected",
	[
		(1, 64 * KIB),
		(500 * KIB, 64 * KIB),
		(5 * MIB, 256 * KIB),
		(10 * MIB - 1, 512 * KIB),
		(10 * MIB, MIB),
		(50 * MIB, MIB),
		(100 * MIB - 1, MIB),
		(100 * MIB, 2 * MIB),
		(200 * MIB, 4 * MIB),
		(500 * MIB, 10 * MIB),
		(1024 * MIB, 10 * MIB),
	],
)
def test_choose_chunk_size_tiers(file_size, expected):
	assert choose_chunk_size(file_size) == expected


def test_small_files_stay_within_bounds():
	for size in (1, 1000, 3 * MIB + 7, 9 * MIB):
		chunk = choose_chunk_size(size)
		assert 64 * KIB <= chunk <= MIB


def test_count_chunks():
	assert count_chunks(0, MIB) == 1
	assert count_chunks(1, MIB) == 1
	assert count_chunks(MIB, MIB) == 1
	assert count_chunks(MIB + 1, MIB) == 2
	assert count_chunks(25 * MIB, MIB) == 25
	with pytest.raises(ValueError):
		count_chunks(10, 0)


def test_plan_partitions_file_exactly():
	data = sample_bytes(10_000)
	source = UploadSource.from_bytes("export.xml", data)

	chunks = list(plan_chunks(source, chunk_size=3_000))

	assert [c.chunk_number for c in chunks] == [0, 1, 2, 3]
	assert all(c.total_chunks == 4 for c in chunks)
	assert [c.size for c in chunks] == [3_000, 3_000, 3_000, 1_000]
	assert [c.is_last_chunk for c in chunks] == [False, False, False, True]
	assert sum(c.size for c in chunks) == len(data)
	assert b"".join(c.data for c in chunks) == data
	for previous, current in zip(chunks, chunks[1:]):
		assert current.offset == previous.end


def test_plan_exact_multiple_marks_last_chunk():
	source = UploadSource.from_bytes("export.xml", sample_bytes(4_000))

	chunks = list(plan_chunks(source, chunk_size=1_000))

	assert len(chunks) == 4
	assert chunks[-1].is_last_chunk
	assert chunks[-1].end == 4_000


def test_plan_single_chunk_file():
	source = UploadSource.from_bytes("tiny.csv", b"a,b\n1,2\n")

	chunks = list(plan_chunks(source))

	assert len(chunks) == 1
	assert chunks[0].chunk_number == 0
	assert chunks[0].total_chunks == 1
	assert chunks[0].is_last_chunk
	assert chunks[0].size == 8


def test_plan_resumes_from_index():
	data = sample_bytes(10_000)
	source = UploadSource.from_bytes("export.xml", data)

	resumed = list(plan_chunks(source, chunk_size=3_000, start=2))

	assert [c.chunk_number for c in resumed] == [2, 3]
	assert resumed[0].offset == 6_000
	assert b"".join(c.data for c in resumed) == data[6_000:]
	assert list(plan_chunks(source, chunk_size=3_000, start=4)) == []


def test_plan_is_lazy():
	reads = []
	data = sample_bytes(5_000)

	def reader(offset, length):
		reads.append(offset)
		return data[offset:offset + length]

	source = UploadSource(name="lazy.bin", size=len(data), reader=reader)
	plan = plan_chunks(source, chunk_size=1_000)

	assert reads == []
	next(plan)
	assert reads == [0]


def test_short_read_is_rejected():
	source = UploadSource(name="truncated.bin", size=100, reader=lambda offset, length: b"x" * (length - 1))

	with pytest.raises(RuntimeError, match="missing bytes"):
		list(plan_chunks(source, chunk_size=50))


def test_source_from_path(tmp_path):
	path = tmp_path / "export.xml"
	path.write_bytes(sample_bytes(2_500))

	source = UploadSource.from_path(path)

	assert source.name == "export.xml"
	assert source.size == 2_500
	assert source.content_type == "application/xml"
	assert source.read(1_000, 10) == sample_bytes(2_500)[1_000:1_010]


def test_validate_file_messages():
	assert validate_file(None) == "No file selected"
	assert validate_file(UploadSource.from_bytes("empty.xml", b"")) == "File is empty"
	big = UploadSource(name="big.xml", size=501 * MIB, reader=lambda o, n: b"")
	assert validate_file(big, max_bytes=500 * MIB) == "File size exceeds maximum allowed size of 500MB"
	assert validate_file(UploadSource.from_bytes("ok.xml", b"<x/>")) is None


def test_ensure_valid_raises_validation_error():
	with pytest.raises(FileValidationError) as exc_info:
		ensure_valid(UploadSource.from_bytes("empty.xml", b""))

	assert exc_info.value.code == ErrorCode.VALIDATION_FAILED
	assert exc_info.value.details["file_name"] == "empty.xml"
