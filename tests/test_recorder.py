import base64
import hashlib
from pathlib import Path

import pytest

from newsreel.playback.controls import PresentationControls
from newsreel.playback.view import FrameRenderer, ViewConfig
from newsreel.recorder.media import composite_command, write_audio_payload
from newsreel.recorder.screen import encoder_command
from newsreel.recorder.session import RecordingConfig, RecordingSession
from newsreel.recorder.uploader import CloudinaryUploader, WebhookNotifier, build_description, sign_params
from newsreel.shared.config.config_loader import Credentials
from newsreel.shared.types.errors import ConfigurationError, UploadError
from newsreel.shared.types.results import NewsItem


class FakeResponse:
    def __init__(self, status, payload=None):
        self.status = status
        self.payload = payload

    async def json(self, content_type=None):
        return self.payload

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.posts = []

    def post(self, url, **kwargs):
        self.posts.append((url, kwargs))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    async def close(self):
        pass


def test_description_lists_english_headlines_then_hashtags():
    news = [NewsItem(id="news-0", headline="বাংলা", description="", image="", headline_en="Floods recede"),
            NewsItem(id="news-1", headline="শুধু বাংলা", description="", image="")]

    assert build_description(news, "#bd #news", "#খবর") == "1. Floods recede\n2. শুধু বাংলা\n\n#bd #news #খবর"
    assert build_description(news[:1]) == "1. Floods recede"


def test_signature_covers_sorted_non_empty_params():
    expected = hashlib.sha1(b"timestamp=1700000000&upload_preset=reels" + b"secret").hexdigest()
    assert sign_params({'upload_preset': 'reels', 'timestamp': '1700000000', 'folder': ''}, "secret") == expected


def test_unsigned_and_signed_form_fields():
    unsigned = CloudinaryUploader(Credentials(cloudinary_cloud_name="demo", cloudinary_upload_preset="reels"))
    assert not unsigned.signed
    assert unsigned._form_fields() == {'upload_preset': 'reels'}

    signed = CloudinaryUploader(Credentials(cloudinary_cloud_name="demo", cloudinary_api_key="key",
                                            cloudinary_api_secret="secret"))
    fields = signed._form_fields()
    assert signed.signed
    assert fields['api_key'] == "key"
    assert fields['signature'] == sign_params({'timestamp': fields['timestamp']}, "secret")


def test_uploader_requires_cloudinary_credentials():
    with pytest.raises(ConfigurationError):
        CloudinaryUploader(Credentials())


async def test_upload_returns_secure_url(tmp_path):
    path = tmp_path / "clip.mp4"
    path.write_bytes(b"video")
    session = FakeSession(FakeResponse(200, {'secure_url': "https://res.example.com/clip.mp4"}))
    uploader = CloudinaryUploader(Credentials(cloudinary_cloud_name="demo", cloudinary_upload_preset="reels"),
                                  session=session)

    assert await uploader.upload(path, resource_type="video") == "https://res.example.com/clip.mp4"
    assert session.posts[0][0] == "https://api.cloudinary.com/v1_1/demo/video/upload"


async def test_upload_failures_raise_upload_error(tmp_path):
    path = tmp_path / "shot.png"
    path.write_bytes(b"png")
    session = FakeSession(FakeResponse(400, {'error': {'message': "Invalid preset"}}))
    uploader = CloudinaryUploader(Credentials(cloudinary_cloud_name="demo", cloudinary_upload_preset="bad"),
                                  session=session)

    with pytest.raises(UploadError, match="Invalid preset"):
        await uploader.upload(path)
    with pytest.raises(UploadError, match="does not exist"):
        await uploader.upload(tmp_path / "missing.png")


async def test_webhook_is_soft():
    disabled = WebhookNotifier(None)
    assert await disabled.notify("v", None, "d") is False

    session = FakeSession(FakeResponse(200), FakeResponse(500))
    notifier = WebhookNotifier("https://hooks.example.com/reel", session=session)
    assert await notifier.notify("https://v", "https://i", "desc") is True
    assert session.posts[0][1]['json'] == {'video_url': "https://v", 'image_url': "https://i", 'description': "desc"}
    assert await notifier.notify("https://v", None, "desc") is False


def test_ffmpeg_commands():
    encode = encoder_command("ffmpeg", 360, 640, 24, Path("out.mp4"))
    assert encode[encode.index("-s") + 1] == "360x640"
    assert encode[encode.index("-pix_fmt") + 1] == "rgb24"

    mux = composite_command("ffmpeg", Path("v.mp4"), Path("a.wav"), Path("final.mp4"))
    assert mux[mux.index("-c:v") + 1] == "copy"
    assert mux[mux.index("-c:a") + 1] == "aac"
    assert "-shortest" in mux
    assert mux[-1] == "final.mp4"


def test_audio_payload_is_written_with_mime_extension(tmp_path):
    path = write_audio_payload(base64.b64encode(b"RIFFdata").decode(), tmp_path, "audio-1", "audio/wav")
    assert path.name == "audio-1.wav"
    assert path.read_bytes() == b"RIFFdata"


class FakeCapture:
    def __init__(self, output_dir):
        self.path = Path(output_dir) / "capture.mp4"
        self.started = False
        self.stopped = 0

    async def start(self):
        self.started = True

    async def stop(self):
        self.stopped += 1
        self.path.write_bytes(b"silent video")
        return self.path


class FakeUploader:
    def __init__(self, fail_image=False, fail_video=False):
        self.fail_image = fail_image
        self.fail_video = fail_video
        self.uploads = []
        self.closed = False

    async def upload(self, path, resource_type="image"):
        self.uploads.append((Path(path).name, resource_type, Path(path).read_bytes()))
        if (resource_type == "image" and self.fail_image) or (resource_type == "video" and self.fail_video):
            raise UploadError(f"{resource_type} rejected")
        return f"https://res.example.com/{Path(path).name}"

    async def close(self):
        self.closed = True


class FakeNotifier:
    def __init__(self):
        self.calls = []

    async def notify(self, video_url, image_url, description):
        self.calls.append((video_url, image_url, description))
        return True


@pytest.fixture
def session_parts(make_sequencer, tmp_path):
    def build(uploader, notifier=None):
        sequencer = make_sequencer(record_mode=True)
        controls = PresentationControls(sequencer, poll_interval=0.005)
        renderer = FrameRenderer(sequencer, ViewConfig(width=90, height=160))
        output_dir = tmp_path / "out"
        composited = []

        async def compositor(video, audio, output):
            composited.append((video, audio.read_bytes()[:4]))
            Path(output).write_bytes(b"video with audio")
            return Path(output)

        config = RecordingConfig(output_dir=str(output_dir), pre_play_pause=0, final_settle=0,
                                 generate_button_timeout=1, ready_timeout=5, start_timeout=1,
                                 playback_timeout=5, session_timeout=20, result_timeout=1)
        session = RecordingSession(controls, renderer, uploader, notifier, config,
                                   capture=FakeCapture(tmp_path), compositor=compositor)
        return session, composited, output_dir
    return build


async def test_session_records_composites_and_publishes(session_parts):
    uploader = FakeUploader()
    notifier = FakeNotifier()
    session, composited, output_dir = session_parts(uploader, notifier)

    result = await session.run()

    assert session.capture.started and session.capture.stopped == 1
    assert composited[0][1] == b'RIFF'
    assert [(name.split('-')[0], kind) for name, kind, _ in uploader.uploads] == [("final", "image"),
                                                                                   ("final", "video")]
    assert uploader.uploads[1][2] == b"video with audio"
    assert uploader.closed
    assert result.video_url.endswith(".mp4")
    assert result.image_url.endswith(".png")
    assert result.description.startswith("1. English headline 0")
    assert notifier.calls == [(result.video_url, result.image_url, result.description)]
    assert result.playback.has_audio
    assert list(output_dir.iterdir()) == []


async def test_snapshot_upload_failure_is_soft(session_parts):
    session, _, _ = session_parts(FakeUploader(fail_image=True))

    result = await session.run()

    assert result.image_url is None
    assert result.video_url


async def test_video_upload_failure_is_fatal(session_parts):
    uploader = FakeUploader(fail_video=True)
    session, _, _ = session_parts(uploader)

    with pytest.raises(UploadError, match="video rejected"):
        await session.run()
    assert uploader.closed
