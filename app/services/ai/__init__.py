# AI pipeline: photo and plan analysis -> scope of work -> priced estimate, plus takeoff review
