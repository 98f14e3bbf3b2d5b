"""Pytest configuration and fixtures."""

import io
import zipfile
from typing import Callable, Optional

import pytest
from PIL import Image
from pptx import Presentation
from pptx.dml.color import RGBColor
from pptx.enum.shapes import MSO_SHAPE
from pptx.util import Inches

NS = (
    'xmlns:a="http://schemas.openxmlformats.org/drawingml/2006/main" '
    'xmlns:r="http://schemas.openxmlformats.org/officeDocument/2006/relationships" '
    'xmlns:p="http://schemas.openxmlformats.org/presentationml/2006/main"'
)
RELS_NS = "http://schemas.openxmlformats.org/package/2006/relationships"
RT = "http://schemas.openxmlformats.org/officeDocument/2006/relationships"

NV_GROUP = (
    '<p:nvGrpSpPr><p:cNvPr id="1" name=""/><p:cNvGrpSpPr/><p:nvPr/></p:nvGrpSpPr>'
    "<p:grpSpPr/>"
)

DEFAULT_THEME_COLORS = {
    "dk1": "000000",
    "lt1": "FFFFFF",
    "dk2": "1F497D",
    "lt2": "EEECE1",
    "accent1": "4F81BD",
    "accent2": "C0504D",
    "accent3": "9BBB59",
    "accent4": "8064A2",
    "accent5": "4BACC6",
    "accent6": "F79646",
    "hlink": "0000FF",
    "folHlink": "800080",
}


# ============================================================================
# XML snippets
# ============================================================================


def xfrm(x: int, y: int, cx: int, cy: int, rot: Optional[int] = None) -> str:
    rot_attr = f' rot="{rot}"' if rot is not None else ""
    return f'<a:xfrm{rot_attr}><a:off x="{x}" y="{y}"/><a:ext cx="{cx}" cy="{cy}"/></a:xfrm>'


def text_box(shape_id: int, name: str, box: tuple, paragraphs: str, sp_pr_extra: str = "") -> str:
    """A non-placeholder text shape; ``paragraphs`` is raw <a:p> XML."""
    return (
        f'<p:sp><p:nvSpPr><p:cNvPr id="{shape_id}" name="{name}"/><p:cNvSpPr txBox="1"/><p:nvPr/></p:nvSpPr>'
        f'<p:spPr>{xfrm(*box)}<a:prstGeom prst="rect"><a:avLst/></a:prstGeom>{sp_pr_extra}</p:spPr>'
        f"<p:txBody><a:bodyPr/><a:lstStyle/>{paragraphs}</p:txBody></p:sp>"
    )


def filled_rect(shape_id: int, name: str, box: tuple, color: str = "FF0000", rot: Optional[int] = None) -> str:
    return (
        f'<p:sp><p:nvSpPr><p:cNvPr id="{shape_id}" name="{name}"/><p:cNvSpPr/><p:nvPr/></p:nvSpPr>'
        f'<p:spPr>{xfrm(*box, rot=rot)}<a:prstGeom prst="rect"><a:avLst/></a:prstGeom>'
        f'<a:solidFill><a:srgbClr val="{color}"/></a:solidFill></p:spPr></p:sp>'
    )


def picture(shape_id: int, name: str, rid: str, box: tuple) -> str:
    return (
        f'<p:pic><p:nvPicPr><p:cNvPr id="{shape_id}" name="{name}"/><p:cNvPicPr/><p:nvPr/></p:nvPicPr>'
        f'<p:blipFill><a:blip r:embed="{rid}"/><a:stretch><a:fillRect/></a:stretch></p:blipFill>'
        f'<p:spPr>{xfrm(*box)}<a:prstGeom prst="rect"><a:avLst/></a:prstGeom></p:spPr></p:pic>'
    )


def group(shape_id: int, off: tuple, ext: tuple, ch_off: tuple, ch_ext: tuple, children: str) -> str:
    return (
        f'<p:grpSp><p:nvGrpSpPr><p:cNvPr id="{shape_id}" name="Group {shape_id}"/><p:cNvGrpSpPr/><p:nvPr/>'
        f"</p:nvGrpSpPr><p:grpSpPr><a:xfrm>"
        f'<a:off x="{off[0]}" y="{off[1]}"/><a:ext cx="{ext[0]}" cy="{ext[1]}"/>'
        f'<a:chOff x="{ch_off[0]}" y="{ch_off[1]}"/><a:chExt cx="{ch_ext[0]}" cy="{ch_ext[1]}"/>'
        f"</a:xfrm></p:grpSpPr>{children}</p:grpSp>"
    )


def run(text: str, rpr: str = "") -> str:
    return f"<a:r>{rpr or '<a:rPr/>'}<a:t>{text}</a:t></a:r>"


def rels_xml(rels: list) -> str:
    entries = "".join(
        f'<Relationship Id="{rid}" Type="{RT}/{kind}" Target="{target}"/>' for rid, kind, target in rels
    )
    return f'<?xml version="1.0" encoding="UTF-8"?><Relationships xmlns="{RELS_NS}">{entries}</Relationships>'


def theme_xml(colors: dict) -> str:
    slots = "".join(f'<a:{name}><a:srgbClr val="{value}"/></a:{name}>' for name, value in colors.items())
    return (
        f'<a:theme {NS} name="Test Theme"><a:themeElements>'
        f'<a:clrScheme name="Test">{slots}</a:clrScheme>'
        '<a:fontScheme name="Test"><a:majorFont><a:latin typeface="Georgia"/></a:majorFont>'
        '<a:minorFont><a:latin typeface="Arial"/></a:minorFont></a:fontScheme>'
        '<a:fmtScheme name="Test"><a:fillStyleLst>'
        '<a:solidFill><a:schemeClr val="phClr"/></a:solidFill>'
        '<a:solidFill><a:schemeClr val="phClr"><a:shade val="50000"/></a:schemeClr></a:solidFill>'
        '<a:gradFill><a:gsLst><a:gs pos="0"><a:schemeClr val="phClr"/></a:gs>'
        '<a:gs pos="100000"><a:srgbClr val="FFFFFF"/></a:gs></a:gsLst><a:lin ang="5400000"/></a:gradFill>'
        "</a:fillStyleLst><a:lnStyleLst>"
        '<a:ln w="9525"><a:solidFill><a:schemeClr val="phClr"/></a:solidFill></a:ln>'
        '<a:ln w="25400"><a:solidFill><a:schemeClr val="phClr"><a:shade val="50000"/></a:schemeClr></a:solidFill></a:ln>'
        "</a:lnStyleLst><a:effectStyleLst/>"
        '<a:bgFillStyleLst><a:solidFill><a:schemeClr val="phClr"/></a:solidFill></a:bgFillStyleLst>'
        "</a:fmtScheme></a:themeElements></a:theme>"
    )


MASTER_XML = (
    f"<p:sldMaster {NS}><p:cSld>"
    '<p:bg><p:bgRef idx="1001"><a:schemeClr val="bg1"/></p:bgRef></p:bg>'
    f"<p:spTree>{NV_GROUP}"
    '<p:sp><p:nvSpPr><p:cNvPr id="2" name="Title Placeholder 1"/><p:cNvSpPr/><p:nvPr><p:ph type="title"/></p:nvPr>'
    f'</p:nvSpPr><p:spPr>{xfrm(457200, 274638, 8229600, 1143000)}</p:spPr>'
    "<p:txBody><a:bodyPr anchor=\"ctr\"/><a:lstStyle/><a:p/></p:txBody></p:sp>"
    '<p:sp><p:nvSpPr><p:cNvPr id="3" name="Text Placeholder 2"/><p:cNvSpPr/><p:nvPr><p:ph type="body" idx="1"/>'
    f'</p:nvPr></p:nvSpPr><p:spPr>{xfrm(457200, 1600200, 8229600, 4525963)}</p:spPr>'
    "<p:txBody><a:bodyPr/><a:lstStyle/><a:p/></p:txBody></p:sp>"
    "</p:spTree></p:cSld>"
    '<p:clrMap bg1="lt1" tx1="dk1" bg2="lt2" tx2="dk2" accent1="accent1" accent2="accent2" accent3="accent3" '
    'accent4="accent4" accent5="accent5" accent6="accent6" hlink="hlink" folHlink="folHlink"/>'
    "<p:txStyles>"
    '<p:titleStyle><a:lvl1pPr algn="ctr"><a:defRPr sz="4400"><a:solidFill><a:schemeClr val="tx2"/></a:solidFill>'
    '<a:latin typeface="+mj-lt"/></a:defRPr></a:lvl1pPr></p:titleStyle>'
    '<p:bodyStyle><a:lvl1pPr><a:buChar char="&#8226;"/><a:defRPr sz="3200"><a:solidFill><a:schemeClr val="tx1"/>'
    '</a:solidFill></a:defRPr></a:lvl1pPr><a:lvl2pPr><a:buChar char="&#8211;"/><a:defRPr sz="2800"/></a:lvl2pPr>'
    "</p:bodyStyle>"
    '<p:otherStyle><a:lvl1pPr><a:defRPr sz="1800"/></a:lvl1pPr></p:otherStyle>'
    "</p:txStyles></p:sldMaster>"
)

LAYOUT_XML = (
    f'<p:sldLayout {NS}><p:cSld name="Title and Content"><p:spTree>{NV_GROUP}'
    '<p:sp><p:nvSpPr><p:cNvPr id="2" name="Title 1"/><p:cNvSpPr/><p:nvPr><p:ph type="title"/></p:nvPr></p:nvSpPr>'
    "<p:spPr/><p:txBody><a:bodyPr/><a:lstStyle/><a:p/></p:txBody></p:sp>"
    '<p:sp><p:nvSpPr><p:cNvPr id="3" name="Content Placeholder 2"/><p:cNvSpPr/><p:nvPr><p:ph idx="1"/></p:nvPr>'
    "</p:nvSpPr><p:spPr/><p:txBody><a:bodyPr/><a:lstStyle/><a:p/></p:txBody></p:sp>"
    "</p:spTree></p:cSld><p:clrMapOvr><a:masterClrMapping/></p:clrMapOvr></p:sldLayout>"
)


class PackageBuilder:
    """Assembles minimal .pptx packages part by part.

    Produces one master, one layout and one theme; each slide's shape tree,
    background and relationships are supplied by the test.
    """

    def __init__(self, slide_size: tuple = (9144000, 6858000)) -> None:
        self.slide_size = slide_size
        self.theme_colors = dict(DEFAULT_THEME_COLORS)
        self.slides: list[dict] = []
        self.media: dict[str, bytes] = {}
        self.extra_parts: dict[str, bytes] = {}

    def add_slide(
        self,
        shapes: str = "",
        background: str = "",
        extra_rels: tuple = (),
        with_rels: bool = True,
    ) -> "PackageBuilder":
        self.slides.append(
            {"shapes": shapes, "background": background, "rels": list(extra_rels), "with_rels": with_rels}
        )
        return self

    def add_media(self, name: str, data: bytes) -> str:
        self.media[name] = data
        return f"../media/{name}"

    def build(self) -> bytes:
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zf:
            zf.writestr("[Content_Types].xml", '<?xml version="1.0"?><Types xmlns="http://schemas.openxmlformats.org/package/2006/content-types"/>')
            zf.writestr("_rels/.rels", rels_xml([("rId1", "officeDocument", "ppt/presentation.xml")]))

            slide_ids = "".join(
                f'<p:sldId id="{256 + i}" r:id="rId{i + 2}"/>' for i in range(len(self.slides))
            )
            zf.writestr(
                "ppt/presentation.xml",
                f"<p:presentation {NS}>"
                '<p:sldMasterIdLst><p:sldMasterId id="2147483648" r:id="rId1"/></p:sldMasterIdLst>'
                f"<p:sldIdLst>{slide_ids}</p:sldIdLst>"
                f'<p:sldSz cx="{self.slide_size[0]}" cy="{self.slide_size[1]}"/>'
                "</p:presentation>",
            )
            pres_rels = [("rId1", "slideMaster", "slideMasters/slideMaster1.xml")]
            pres_rels += [(f"rId{i + 2}", "slide", f"slides/slide{i + 1}.xml") for i in range(len(self.slides))]
            zf.writestr("ppt/_rels/presentation.xml.rels", rels_xml(pres_rels))

            zf.writestr("ppt/slideMasters/slideMaster1.xml", MASTER_XML)
            zf.writestr(
                "ppt/slideMasters/_rels/slideMaster1.xml.rels",
                rels_xml([
                    ("rId1", "slideLayout", "../slideLayouts/slideLayout1.xml"),
                    ("rId2", "theme", "../theme/theme1.xml"),
                ]),
            )
            zf.writestr("ppt/slideLayouts/slideLayout1.xml", LAYOUT_XML)
            zf.writestr(
                "ppt/slideLayouts/_rels/slideLayout1.xml.rels",
                rels_xml([("rId1", "slideMaster", "../slideMasters/slideMaster1.xml")]),
            )
            zf.writestr("ppt/theme/theme1.xml", theme_xml(self.theme_colors))

            for index, slide in enumerate(self.slides, start=1):
                zf.writestr(
                    f"ppt/slides/slide{index}.xml",
                    f"<p:sld {NS}><p:cSld>{slide['background']}<p:spTree>{NV_GROUP}{slide['shapes']}"
                    "</p:spTree></p:cSld></p:sld>",
                )
                if slide["with_rels"]:
                    rels = [("rId1", "slideLayout", "../slideLayouts/slideLayout1.xml")] + slide["rels"]
                    zf.writestr(f"ppt/slides/_rels/slide{index}.xml.rels", rels_xml(rels))

            for name, data in self.media.items():
                zf.writestr(f"ppt/media/{name}", data)
            for name, data in self.extra_parts.items():
                zf.writestr(name, data)

        return buffer.getvalue()


# ============================================================================
# Fixtures
# ============================================================================


def image_bytes(size: tuple = (40, 20), color: str = "red", fmt: str = "PNG") -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format=fmt)
    return buffer.getvalue()


def save(prs) -> bytes:
    buffer = io.BytesIO()
    prs.save(buffer)
    return buffer.getvalue()


@pytest.fixture
def package_builder() -> Callable[..., PackageBuilder]:
    """Factory for hand-assembled packages."""
    return PackageBuilder


@pytest.fixture
def png_bytes() -> bytes:
    """A 40x20 red PNG."""
    return image_bytes()


@pytest.fixture
def hello_pptx() -> bytes:
    """One blank 4:3 slide: a 'Hello' text box at 1in,1in over a red rectangle."""
    prs = Presentation()
    slide = prs.slides.add_slide(prs.slide_layouts[6])
    textbox = slide.shapes.add_textbox(Inches(1), Inches(1), Inches(4), Inches(1))
    textbox.text_frame.text = "Hello"
    rect = slide.shapes.add_shape(MSO_SHAPE.RECTANGLE, Inches(1), Inches(3), Inches(2), Inches(1))
    rect.fill.solid()
    rect.fill.fore_color.rgb = RGBColor(0xFF, 0x00, 0x00)
    return save(prs)


@pytest.fixture
def three_slide_pptx() -> bytes:
    """Three slides with a titled first slide and a bulleted second slide."""
    prs = Presentation()
    title_slide = prs.slides.add_slide(prs.slide_layouts[0])
    title_slide.shapes.title.text = "Quarterly Review"
    title_slide.placeholders[1].text = "Prepared for the board"

    content_slide = prs.slides.add_slide(prs.slide_layouts[1])
    content_slide.shapes.title.text = "Agenda"
    content_slide.placeholders[1].text = "Results"

    blank = prs.slides.add_slide(prs.slide_layouts[6])
    blank.shapes.add_textbox(Inches(1), Inches(1), Inches(3), Inches(1)).text_frame.text = "Thanks"
    return save(prs)


@pytest.fixture
def shared_image_pptx(png_bytes: bytes) -> bytes:
    """Two slides showing the same picture."""
    prs = Presentation()
    for _ in range(2):
        slide = prs.slides.add_slide(prs.slide_layouts[6])
        slide.shapes.add_picture(io.BytesIO(png_bytes), Inches(1), Inches(1), Inches(2), Inches(1))
    return save(prs)
