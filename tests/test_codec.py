import pytest
from pydantic import BaseModel, ValidationError

from stalewise import cache as C

from _support import ok


class Scene(BaseModel):
    scene_id: int
    name: str


def test_json_is_compact():
    assert C.JSON.encode({"a": [1, 2]}) == '{"a":[1,2]}'
    assert C.JSON.decode('{"a":[1,2]}') == {"a": [1, 2]}


def test_json_rejects_unencodable():
    with pytest.raises(TypeError):
        C.JSON.encode(object())


def test_pydantic_codec_restores_models():
    codec = C.PydanticCodec(list[Scene])
    text = codec.encode([Scene(scene_id=1, name="Sunrise")])

    assert codec.decode(text) == [Scene(scene_id=1, name="Sunrise")]


def test_pydantic_codec_validates_on_decode():
    with pytest.raises(ValidationError):
        C.PydanticCodec(Scene).decode('{"scene_id":"x"}')


async def test_service_uses_options_codec(service, options):
    async def compute():
        return Scene(scene_id=7, name="Aurora")

    opts = options.with_codec(C.PydanticCodec(Scene))
    await service.get_or_compute(opts, compute)
    hit = ok(await service.get_or_compute(opts, compute))

    assert hit.source is C.CacheSource.FRESH
    assert hit.value == Scene(scene_id=7, name="Aurora")
