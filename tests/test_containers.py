"""Tests for the media container state machine and Graph container calls."""

import httpx
import pytest

from connectors.containers import (
    ContainerState,
    InstagramContainerClient,
    PollPolicy,
    drive_until_ready,
    transition,
)
from connectors.errors import (
    ContainerCreateError,
    ContainerFailedError,
    ContainerStatusError,
    ContainerTimeoutError,
    ContainerUnknownStateError,
    InvalidCarouselSizeError,
    PublishError,
)
from connectors.models import MediaObject, MediaType, PostType, StagedFile

from conftest import mock_client, run

BASE = "https://graph.test/v20.0"
POLICY = PollPolicy(interval=3, max_attempts=20)


def status_feed(samples):
    """check_status stand-in that replays samples and counts polls."""
    samples = list(samples)
    polls = []

    async def check_status(container_id):
        polls.append(container_id)
        return samples[min(len(polls), len(samples)) - 1]

    return check_status, polls


# ---------------------------------------------------------------------------
# transition
# ---------------------------------------------------------------------------

def test_transition_progress_to_finished():
    state = transition(ContainerState.CREATED, "IN_PROGRESS")
    assert state is ContainerState.IN_PROGRESS
    assert transition(state, "FINISHED") is ContainerState.FINISHED


def test_terminal_states_absorb():
    """Once terminal, later samples change nothing."""
    assert transition(ContainerState.FINISHED, "ERROR") is ContainerState.FINISHED
    assert transition(ContainerState.EXPIRED, "FINISHED") is ContainerState.EXPIRED


@pytest.mark.parametrize("sample", ["", "PENDING", "CREATED"])
def test_unknown_sample_rejected(sample):
    with pytest.raises(ContainerUnknownStateError):
        transition(ContainerState.IN_PROGRESS, sample, "c1")


# ---------------------------------------------------------------------------
# drive_until_ready
# ---------------------------------------------------------------------------

def test_ready_after_three_in_progress(sleeper):
    """Three IN_PROGRESS then FINISHED: four polls, nine seconds of waiting."""
    check_status, polls = status_feed(["IN_PROGRESS"] * 3 + ["FINISHED"])

    container = run(drive_until_ready("c1", check_status, POLICY, sleep=sleeper))

    assert container.status == "FINISHED"
    assert container.container_id == "c1"
    assert len(polls) == 4
    assert sleeper.delays == [3, 3, 3]
    assert sum(sleeper.delays) == 9


def test_timeout_after_max_attempts(sleeper):
    """Never finishing should stop after exactly twenty polls."""
    check_status, polls = status_feed(["IN_PROGRESS"])

    with pytest.raises(ContainerTimeoutError) as exc:
        run(drive_until_ready("c1", check_status, POLICY, sleep=sleeper))

    assert len(polls) == 20
    assert len(sleeper.delays) == 19
    assert exc.value.details["last_status"] == "IN_PROGRESS"
    assert exc.value.retryable is True


def test_error_on_first_poll(sleeper):
    """ERROR should fail immediately without waiting."""
    check_status, polls = status_feed(["ERROR"])

    with pytest.raises(ContainerFailedError, match="Container c1 failed with status: ERROR"):
        run(drive_until_ready("c1", check_status, POLICY, sleep=sleeper))

    assert len(polls) == 1
    assert sleeper.delays == []


def test_expired_after_progress(sleeper):
    check_status, _ = status_feed(["IN_PROGRESS", "EXPIRED"])

    with pytest.raises(ContainerFailedError, match="EXPIRED"):
        run(drive_until_ready("c1", check_status, POLICY, sleep=sleeper))


def test_already_published_is_ready(sleeper):
    check_status, _ = status_feed(["PUBLISHED"])

    container = run(drive_until_ready("c1", check_status, POLICY, sleep=sleeper))

    assert container.status == "PUBLISHED"


def test_unknown_status_stops_polling(sleeper):
    check_status, polls = status_feed(["IN_PROGRESS", "WEIRD"])

    with pytest.raises(ContainerUnknownStateError):
        run(drive_until_ready("c1", check_status, POLICY, sleep=sleeper))
    assert len(polls) == 2


# ---------------------------------------------------------------------------
# InstagramContainerClient
# ---------------------------------------------------------------------------

class GraphStub:
    """Answers container creation, status and publish calls."""

    def __init__(self, statuses=None, create_status=200, publish_status=200, status_code=200):
        self.requests = []
        self.statuses = statuses or {}
        self.create_status = create_status
        self.publish_status = publish_status
        self.status_code = status_code
        self.created = 0

    def __call__(self, request):
        self.requests.append(request)
        path = request.url.path
        if request.method == "POST" and path.endswith("/media"):
            if self.create_status != 200:
                return httpx.Response(self.create_status, json={"error": {"message": "bad media"}})
            self.created += 1
            return httpx.Response(200, json={"id": f"c{self.created}"})
        if request.method == "POST" and path.endswith("/media_publish"):
            if self.publish_status != 200:
                return httpx.Response(self.publish_status, json={"error": {"message": "nope"}})
            return httpx.Response(200, json={"id": "published-1"})
        if self.status_code != 200:
            return httpx.Response(self.status_code, json={"error": {"message": "gone"}})
        container_id = path.rsplit("/", 1)[-1]
        return httpx.Response(200, json={"status_code": self.statuses.get(container_id, "FINISHED")})

    def creates(self):
        return [r for r in self.requests if r.method == "POST" and r.url.path.endswith("/media")]

    def polls(self):
        return [r for r in self.requests if r.method == "GET"]


def make_containers(stub, sleeper, staged=None):
    staged = staged if staged is not None else []

    async def stager(url, client):
        staged.append(url)
        return StagedFile(public_url=f"https://tmp.host/{len(staged)}")

    return InstagramContainerClient(
        mock_client(stub), "tok", base_url=BASE, stager=stager, poll_policy=POLICY, sleep=sleeper
    )


def test_check_status_query(sleeper):
    """Status checks should ask only for status_code."""
    stub = GraphStub(statuses={"c9": "IN_PROGRESS"})
    containers = make_containers(stub, sleeper)

    assert run(containers.check_status("c9")) == "IN_PROGRESS"
    params = stub.requests[0].url.params
    assert params["fields"] == "status_code"
    assert params["access_token"] == "tok"


def test_check_status_http_error(sleeper):
    stub = GraphStub(status_code=400)
    containers = make_containers(stub, sleeper)

    with pytest.raises(ContainerStatusError):
        run(containers.check_status("c1"))


def test_image_child_container(sleeper):
    """Carousel image children carry is_carousel_item and no caption, and are not polled."""
    stub = GraphStub()
    staged = []
    containers = make_containers(stub, sleeper, staged)

    container_id = run(containers.create_container(
        "17841", MediaObject(url="https://src/a.jpg"), True, caption="ignored"
    ))

    assert container_id == "c1"
    assert staged == ["https://src/a.jpg"]
    params = stub.creates()[0].url.params
    assert params["image_url"] == "https://tmp.host/1"
    assert params["is_carousel_item"] == "true"
    assert "caption" not in params
    assert "media_type" not in params
    assert stub.polls() == []


def test_video_container_waits_until_ready(sleeper):
    """VIDEO containers are polled before the id is returned."""
    stub = GraphStub(statuses={"c1": "FINISHED"})
    containers = make_containers(stub, sleeper)

    run(containers.create_container(
        "17841", MediaObject(url="https://src/v.mp4", type=MediaType.VIDEO), False,
        caption="hello", single_media_post_type=PostType.REELS,
    ))

    params = stub.creates()[0].url.params
    assert params["video_url"] == "https://tmp.host/1"
    assert params["media_type"] == "REELS"
    assert params["caption"] == "hello"
    assert len(stub.polls()) == 1


def test_create_failure_reports_staged_url(sleeper):
    stub = GraphStub(create_status=400)
    containers = make_containers(stub, sleeper)

    with pytest.raises(ContainerCreateError) as exc:
        run(containers.create_container("17841", MediaObject(url="https://src/a.jpg"), False))
    assert exc.value.details["staged_url"] == "https://tmp.host/1"


@pytest.mark.parametrize("count", [1, 11])
def test_carousel_size_bounds(sleeper, count):
    stub = GraphStub()
    containers = make_containers(stub, sleeper)

    with pytest.raises(InvalidCarouselSizeError):
        run(containers.create_carousel("17841", [f"c{i}" for i in range(count)]))
    assert stub.requests == []


def test_carousel_container_params(sleeper):
    stub = GraphStub()
    containers = make_containers(stub, sleeper)

    run(containers.create_carousel("17841", ["a", "b", "c"], caption="trip"))

    params = stub.creates()[0].url.params
    assert params["media_type"] == "CAROUSEL"
    assert params["children"] == "a,b,c"
    assert params["caption"] == "trip"


def test_publish_failure(sleeper):
    stub = GraphStub(publish_status=500)
    containers = make_containers(stub, sleeper)

    with pytest.raises(PublishError):
        run(containers.publish("17841", "c1"))
