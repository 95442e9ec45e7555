"""Dialogue served by the bot: welcome, documentation branch, registration and samples."""

from flowbot.services.flow_graph import FlowGraph, FlowGraphBuilder, action, answer
from flowbot.services.flow_outcomes import Fallback, Jump

REGISTER_FLOW = "REGISTER_FLOW"
SAMPLES = "SAMPLES"

WELCOME = "welcome"
DOC = "doc"
REGISTER = "register"
SAMPLES_NODE = "samples"

SAMPLE_VIDEO_URL = (
    "https://media.giphy.com/media/v1.Y2lkPTc5MGI3NjExYTJ0ZGdjd2syeXAwMjQ4aWdkcW04OWlqcXI3Ynh1ODkwZ25zZWZ1dCZlcD12"
    "MV9pbnRlcm5hbF9naWZfYnlfaWQmY3Q9Zw/LCohAb657pSdHv0Q5h/giphy.mp4"
)
SAMPLE_AUDIO_URL = "https://cdn.freesound.org/previews/728/728142_11861866-lq.mp3"
SAMPLE_FILE_URL = "https://www.w3.org/WAI/ER/tests/xhtml/testfiles/resources/pdf/dummy.pdf"


def require_doc(ctx):
    if "doc" not in ctx.body.casefold():
        return Fallback("You should type *doc*")
    return None


def continue_or_thank(ctx):
    if "yes" in ctx.body.casefold():
        return Jump(REGISTER)
    ctx.send("Thanks!")
    return None


def save_name(ctx):
    ctx.state.update({"name": ctx.body})


def save_age(ctx):
    ctx.state.update({"age": ctx.body})


def send_summary(ctx):
    ctx.send(f"{ctx.state.get('name')}, thanks for your information!: Your age: {ctx.state.get('age')}")


def build_graph(samples_media_path: str = "assets/sample.png") -> FlowGraph:
    builder = FlowGraphBuilder()

    builder.add_node(
        WELCOME,
        keywords=["hi", "hello", "hola"],
        steps=[
            answer("🙌 Hello welcome to this *Chatbot*"),
            answer(
                [
                    "I share with you the following links of interest about the project",
                    "👉 *doc* to view the documentation",
                ],
                delay_ms=800,
                capture=True,
                callback=require_doc,
            ),
        ],
        branches=[DOC],
    )

    builder.add_node(
        DOC,
        keywords=["doc"],
        internal=True,
        steps=[
            answer(
                ["You can see the documentation here", "📄 https://builderbot.app/docs \n", "Do you want to continue? *yes*"],
                capture=True,
                callback=continue_or_thank,
            ),
        ],
    )

    builder.add_node(
        REGISTER,
        events=[REGISTER_FLOW],
        steps=[
            answer("What is your name?", capture=True, callback=save_name),
            answer("What is your age?", capture=True, callback=save_age),
            action(send_summary),
        ],
    )

    builder.add_node(
        SAMPLES_NODE,
        keywords=["samples"],
        events=[SAMPLES],
        steps=[
            answer("💪 I'll send you a lot files..."),
            answer("Send image from Local", media=samples_media_path),
            answer("Send video from URL", media=SAMPLE_VIDEO_URL),
            answer("Send audio from URL", media=SAMPLE_AUDIO_URL),
            answer("Send file from URL", media=SAMPLE_FILE_URL),
        ],
    )

    return builder.build()
