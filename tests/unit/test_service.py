"""Tests for the question bank service read and write paths."""

import httpx
import pytest

from src.bank.errors import RecordNotFound, ValidationError
from src.bank.executor import ReconcileExecutor
from src.bank.models import (
    GroupDraft,
    Modality,
    OptionDraft,
    PendingImage,
    QuestionDraft,
    SharedFields,
)
from src.bank.service import QuestionBankService, record_image_urls
from src.storage.base import RecordFilter
from src.storage.images import ImageUploader
from src.storage.memory import InMemoryQuestionStore

CDN = "https://cdn.example.test"


class FakeImageServer:
    """MockTransport handler that stores uploads and accepts deletes."""

    def __init__(self):
        self.uploads = 0
        self.deleted = []

    def __call__(self, request):
        if request.method == "POST":
            self.uploads += 1
            return httpx.Response(200, json={"url": f"{CDN}/img{self.uploads}.png"})
        self.deleted.append(request.url.params["url"])
        return httpx.Response(204)


def make_service(store, image_server=None):
    uploader = None
    if image_server is not None:
        uploader = ImageUploader(
            upload_url=f"{CDN}/upload",
            timeout_seconds=1.0,
            max_bytes=1024,
            client=httpx.AsyncClient(transport=httpx.MockTransport(image_server)),
        )
    executor = ReconcileExecutor(store, timeout=1.0, max_concurrency=1, check_stale=True)
    return QuestionBankService(store, uploader=uploader, executor=executor)


def draft_from_group(group):
    return GroupDraft(
        modality=group.modality,
        shared=SharedFields.from_record(group.first),
        passage=group.first.informative_text or "",
        questions=[
            QuestionDraft(
                question_text=r.question_text,
                options=[
                    OptionDraft(text=o.text, is_correct=o.is_correct, image_url=o.image_url)
                    for o in r.options
                ],
                question_images=list(r.question_images),
                record_id=r.id,
            )
            for r in group.records
        ],
    )


@pytest.mark.asyncio
async def test_save_new_group_then_load_it(reading_draft):
    store = InMemoryQuestionStore()
    service = make_service(store)

    outcome = await service.save_group(reading_draft)
    group = await service.load_group(outcome.created_ids[0])

    assert outcome.count("create") == 2
    assert group.modality is Modality.READING_COMPREHENSION
    assert sorted(group.ids) == sorted(outcome.created_ids)
    assert {r.informative_text for r in group.records} == {reading_draft.passage}


@pytest.mark.asyncio
async def test_edit_removes_dropped_member(reading_draft, make_question_draft):
    reading_draft.questions.append(make_question_draft("Who is Tom?"))
    store = InMemoryQuestionStore()
    service = make_service(store)
    created = await service.save_group(reading_draft)
    group = await service.load_group(created.created_ids[0])

    draft = draft_from_group(group)
    dropped = draft.questions.pop(0)
    draft.questions[0].question_text = "Where does Tom ride his bike?"
    outcome = await service.save_group(draft, previous=group)

    assert outcome.count("delete") == 1
    assert outcome.count("update") == 1
    assert len(store) == 2
    assert await store.get_record(dropped.record_id) is None
    reloaded = await service.load_group(draft.questions[0].record_id)
    assert reloaded.size == 2


@pytest.mark.asyncio
async def test_invalid_draft_writes_nothing(shared_fields):
    store = InMemoryQuestionStore()
    service = make_service(store)
    draft = GroupDraft(modality=Modality.READING_COMPREHENSION, shared=shared_fields)

    with pytest.raises(ValidationError):
        await service.save_group(draft)
    assert len(store) == 0


@pytest.mark.asyncio
async def test_pending_images_are_uploaded_before_save(shared_fields):
    store = InMemoryQuestionStore()
    server = FakeImageServer()
    service = make_service(store, server)
    draft = GroupDraft(
        modality=Modality.STANDARD_MC,
        shared=shared_fields,
        questions=[
            QuestionDraft(
                question_text="Which picture shows a cat?",
                question_images=[PendingImage(data=b"png", filename="fig.png")],
                options=[
                    OptionDraft(image_url=PendingImage(data=b"cat", filename="cat.png"), is_correct=True),
                    OptionDraft(text="A dog"),
                ],
            )
        ],
    )

    outcome = await service.save_group(draft)
    record = await store.get_record(outcome.created_ids[0])

    assert server.uploads == 2
    assert record.question_images == [f"{CDN}/img1.png"]
    assert record.options[0].image_url == f"{CDN}/img2.png"


@pytest.mark.asyncio
async def test_delete_group_removes_members_and_images(make_record):
    records = [
        make_record(
            f"r{i}",
            informative_text="Tom has a red bike.",
            minute=i,
            informative_images=[f"{CDN}/shared.png"],
        )
        for i in (1, 2)
    ]
    records.append(make_record("other", minute=5))
    store = InMemoryQuestionStore(records)
    server = FakeImageServer()
    service = make_service(store, server)

    group = await service.load_group("r2")
    outcome = await service.delete_group(group)

    assert outcome.count("delete") == 2
    assert len(store) == 1
    assert server.deleted == [f"{CDN}/shared.png"]


@pytest.mark.asyncio
async def test_load_missing_record():
    service = make_service(InMemoryQuestionStore())

    with pytest.raises(RecordNotFound):
        await service.load_group("nope")


@pytest.mark.asyncio
async def test_list_catalog_filters_records(make_record):
    records = [
        make_record("e1", informative_text="Story", minute=1),
        make_record("e2", informative_text="Story", minute=2),
        make_record("m1", subject_code="MA", minute=3),
    ]
    service = make_service(InMemoryQuestionStore(records))

    everything = await service.list_catalog()
    maths = await service.list_catalog(RecordFilter(subject_code="MA"))

    assert len(everything) == 2
    assert [e.record.id for e in maths] == ["m1"]


def test_record_image_urls(make_record):
    record = make_record("r1", informative_images=["a"], question_images=["b"])
    record.options[1].image_url = "c"

    assert record_image_urls(record) == ["a", "b", "c"]
